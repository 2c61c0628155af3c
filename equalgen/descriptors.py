#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Read-only view of protobuf schema descriptors.

The generator consumes the FileDescriptorProto messages that protoc hands to
plugins. This module wraps them in small objects that know the things the
code generator cares about: declaration order, Python naming of the
``*_pb2`` module and classes, and fully qualified type names so that a field
can be resolved to the RecordType it refers to, even across files.

Nothing in here mutates the underlying descriptors.
"""

import keyword
from typing import Dict, Iterator, List, Optional

from google.protobuf import descriptor_pb2

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto
FeatureSet = descriptor_pb2.FeatureSet

TYPE_NAMES = {
    FieldDescriptorProto.TYPE_DOUBLE: 'double',
    FieldDescriptorProto.TYPE_FLOAT: 'float',
    FieldDescriptorProto.TYPE_INT64: 'int64',
    FieldDescriptorProto.TYPE_UINT64: 'uint64',
    FieldDescriptorProto.TYPE_INT32: 'int32',
    FieldDescriptorProto.TYPE_FIXED64: 'fixed64',
    FieldDescriptorProto.TYPE_FIXED32: 'fixed32',
    FieldDescriptorProto.TYPE_BOOL: 'bool',
    FieldDescriptorProto.TYPE_STRING: 'string',
    FieldDescriptorProto.TYPE_GROUP: 'group',
    FieldDescriptorProto.TYPE_MESSAGE: 'message',
    FieldDescriptorProto.TYPE_BYTES: 'bytes',
    FieldDescriptorProto.TYPE_UINT32: 'uint32',
    FieldDescriptorProto.TYPE_ENUM: 'enum',
    FieldDescriptorProto.TYPE_SFIXED32: 'sfixed32',
    FieldDescriptorProto.TYPE_SFIXED64: 'sfixed64',
    FieldDescriptorProto.TYPE_SINT32: 'sint32',
    FieldDescriptorProto.TYPE_SINT64: 'sint64',
}


def pb2_module_name(proto_name: str) -> str:
    """Python module protoc --python_out writes for a .proto file.

    >>> pb2_module_name('foo/bar-baz.proto')
    'foo.bar_baz_pb2'
    """
    base = proto_name[:-6] if proto_name.endswith('.proto') else proto_name
    return base.replace('-', '_').replace('/', '.') + '_pb2'


def equal_module_name(proto_name: str) -> str:
    """Python module holding the generated equality functions."""
    return pb2_module_name(proto_name)[:-len('_pb2')] + '_equal'


def module_alias(module: str) -> str:
    """Local name for an imported module, using protoc's mangling rules."""
    return module.replace('_', '__').replace('.', '_dot_')


def attribute(expr: str, name: str) -> str:
    """Python expression reading attribute ``name`` of ``expr``."""
    if keyword.iskeyword(name):
        return 'getattr(%s, %r)' % (expr, name)
    return '%s.%s' % (expr, name)


class Field:
    """One field of a RecordType, in declaration order."""

    def __init__(self, field_desc, record: 'RecordType'):
        self.name = field_desc.name
        self.number = field_desc.number
        self.type = field_desc.type
        self.type_name = field_desc.type_name
        self.label = field_desc.label
        self.proto3_optional = field_desc.proto3_optional
        self.oneof_index = field_desc.oneof_index if field_desc.HasField('oneof_index') else None
        self.record = record
        self.descriptor = field_desc

    @property
    def syntax(self) -> str:
        return self.record.proto_file.syntax

    def is_repeated(self) -> bool:
        return self.label == FieldDescriptorProto.LABEL_REPEATED

    def feature(self, name: str) -> int:
        """
        Resolve an editions feature of this field, e.g. ``field_presence``.

        The field's own options win, then each enclosing message from the
        innermost outward, then the file. Returns 0 (the ``*_UNKNOWN`` value)
        if no scope sets it.
        """
        scopes = [self.descriptor.options]
        record = self.record
        while record is not None:
            scopes.append(record.descriptor.options)
            record = record.parent
        scopes.append(self.record.proto_file.fdesc.options)
        for options in scopes:
            if options.features.HasField(name):
                return getattr(options.features, name)
        return 0

    def get_type_name(self) -> str:
        """Get human-readable type name."""
        return TYPE_NAMES.get(self.type, 'unknown')

    def __repr__(self):
        return 'Field(%s.%s: %s)' % (self.record.name, self.name, self.get_type_name())


class RecordType:
    """A message type: fields, extension support and Python naming."""

    def __init__(self, msg_desc, proto_file: 'ProtoFile', parent: Optional['RecordType'] = None):
        self.descriptor = msg_desc
        self.proto_file = proto_file
        self.parent = parent
        if parent is None:
            self.name = msg_desc.name
        else:
            self.name = parent.name + '.' + msg_desc.name
        if proto_file.package:
            self.full_name = proto_file.package + '.' + self.name
        else:
            self.full_name = self.name
        self.fields: List[Field] = [Field(f, self) for f in msg_desc.field]
        self.has_extensions = len(msg_desc.extension_range) > 0
        self.is_map_entry = msg_desc.options.map_entry
        self.nested: List['RecordType'] = [RecordType(m, proto_file, self) for m in msg_desc.nested_type]
        # Prefix of generated function names, e.g. ``Outer_Inner``; made
        # unique within the file by ProtoFile
        self.func_prefix = self.name.replace('.', '_')

    def class_path(self, module_expr: str) -> str:
        """Expression naming the generated message class."""
        return module_expr + '.' + self.name

    def walk(self) -> Iterator['RecordType']:
        """This type followed by all nested types, depth-first."""
        yield self
        for sub in self.nested:
            yield from sub.walk()

    def __repr__(self):
        return 'RecordType(%s)' % self.full_name


class ProtoFile:
    """A single .proto file and the message types declared in it."""

    def __init__(self, fdesc):
        self.fdesc = fdesc
        self.name = fdesc.name
        self.package = fdesc.package
        # protoc leaves syntax empty for proto2 files
        self.syntax = fdesc.syntax or 'proto2'
        self.messages: List[RecordType] = [RecordType(m, self) for m in fdesc.message_type]
        self._assign_func_prefixes()

    @property
    def pb2_module(self) -> str:
        return pb2_module_name(self.name)

    @property
    def equal_module(self) -> str:
        return equal_module_name(self.name)

    @property
    def base_path(self) -> str:
        """Output path stem, e.g. ``foo/bar`` for ``foo/bar.proto``."""
        return self.name[:-6] if self.name.endswith('.proto') else self.name

    def records(self) -> Iterator[RecordType]:
        """All message types in declaration order, parents before nested types."""
        for msg in self.messages:
            yield from msg.walk()

    def _assign_func_prefixes(self) -> None:
        """
        Give every message of the file a distinct function name prefix.

        Top-level messages keep their own name. A nested type ``A.B`` gets
        ``A_B`` unless another message already uses it (such as a top-level
        ``A_B``); then ``A__B``, then a numeric suffix.
        """
        records = [r for r in self.records() if not r.is_map_entry]
        taken = {r.name for r in records if r.parent is None}
        for record in records:
            if record.parent is None:
                continue
            prefix = record.name.replace('.', '_')
            if prefix in taken:
                prefix = record.name.replace('.', '__')
            base, n = prefix, 2
            while prefix in taken:
                prefix = '%s_%d' % (base, n)
                n += 1
            record.func_prefix = prefix
            taken.add(prefix)

    def __repr__(self):
        return 'ProtoFile(%s)' % self.name


class TypeIndex:
    """
    Lookup of RecordTypes by fully qualified name across a set of files.

    Field type names in descriptors produced by protoc are absolute
    (``.pkg.Outer.Inner``); both that form and the form without the leading
    dot are accepted.
    """

    def __init__(self, files: Optional[List[ProtoFile]] = None):
        self.files: Dict[str, ProtoFile] = {}
        self.records: Dict[str, RecordType] = {}
        for proto_file in files or []:
            self.add(proto_file)

    def add(self, proto_file: ProtoFile) -> None:
        self.files[proto_file.name] = proto_file
        for record in proto_file.records():
            self.records[record.full_name] = record

    def find(self, type_name: str) -> Optional[RecordType]:
        return self.records.get(type_name.lstrip('.'))

    @classmethod
    def from_descriptors(cls, fdescs) -> 'TypeIndex':
        return cls([ProtoFile(f) for f in fdescs])

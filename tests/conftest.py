"""
Pytest configuration and shared fixtures for equalgen tests.

The tests never call protoc. Schemas are written directly as
FileDescriptorProto messages, message classes are built from them the same
way protoc-generated ``*_pb2`` modules build theirs, and generated equality
modules are executed in-process.

Key concepts:
    - ``example.proto`` (proto2): scalars with presence, bytes, nested
      messages, repeated fields, maps, a group, a keyword field name and
      extensions.
    - ``p3.proto`` (proto3): implicit presence, ``optional``, oneof and a
      nested type.
    - ``other.proto`` (proto3): a message referring to a type of
      ``p3.proto``, for cross-file delegation.
"""

import sys
import types
from typing import Dict, List, Optional

import pytest
from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.internal import builder

from equalgen.descriptors import pb2_module_name
from equalgen.generator import generate_files
from equalgen.options import GeneratorOptions

FD = descriptor_pb2.FieldDescriptorProto


# =============================================================================
# Schema Construction Helpers
# =============================================================================

def add_field(msg, name: str, number: int, type_: int, label: int = FD.LABEL_OPTIONAL,
              type_name: Optional[str] = None, oneof_index: Optional[int] = None,
              proto3_optional: bool = False):
    """Append a field to a DescriptorProto and return it."""
    f = msg.field.add()
    f.name = name
    f.number = number
    f.type = type_
    f.label = label
    f.json_name = name
    if type_name:
        f.type_name = type_name
    if oneof_index is not None:
        f.oneof_index = oneof_index
    if proto3_optional:
        f.proto3_optional = True
    return f


def add_map_entry(msg, entry_name: str, key_type: int, value_type: int,
                  value_type_name: Optional[str] = None):
    """Declare the nested ``<Name>Entry`` type protoc creates for a map field."""
    entry = msg.nested_type.add()
    entry.name = entry_name
    entry.options.map_entry = True
    add_field(entry, 'key', 1, key_type)
    add_field(entry, 'value', 2, value_type, type_name=value_type_name)
    return entry


def example_proto() -> descriptor_pb2.FileDescriptorProto:
    """
    proto2 schema equivalent to::

        package test;
        message B {
            optional string a = 1;
            repeated int64 g = 2;
        }
        message C {
            optional int32 x = 1;
            optional bytes data = 2;
            optional B b = 3;
            repeated B bs = 4;
            map<string, int32> counts = 5;
            map<int32, B> children = 6;
            optional group Grp = 7 { optional int32 v = 8; }
            optional string from = 9;
            repeated bytes chunks = 10;
            extensions 100 to 199;
        }
        message Blob {
            optional int32 id = 1;
            extensions 100 to 199;
        }
        extend C {
            optional int32 ext_num = 100;
            repeated string ext_tags = 101;
        }
        extend Blob {
            optional string blob_note = 100;
        }
    """
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = 'example.proto'
    fdp.package = 'test'
    fdp.syntax = 'proto2'

    b = fdp.message_type.add()
    b.name = 'B'
    add_field(b, 'a', 1, FD.TYPE_STRING)
    add_field(b, 'g', 2, FD.TYPE_INT64, FD.LABEL_REPEATED)

    c = fdp.message_type.add()
    c.name = 'C'
    add_field(c, 'x', 1, FD.TYPE_INT32)
    add_field(c, 'data', 2, FD.TYPE_BYTES)
    add_field(c, 'b', 3, FD.TYPE_MESSAGE, type_name='.test.B')
    add_field(c, 'bs', 4, FD.TYPE_MESSAGE, FD.LABEL_REPEATED, type_name='.test.B')
    add_map_entry(c, 'CountsEntry', FD.TYPE_STRING, FD.TYPE_INT32)
    add_field(c, 'counts', 5, FD.TYPE_MESSAGE, FD.LABEL_REPEATED, type_name='.test.C.CountsEntry')
    add_map_entry(c, 'ChildrenEntry', FD.TYPE_INT32, FD.TYPE_MESSAGE, '.test.B')
    add_field(c, 'children', 6, FD.TYPE_MESSAGE, FD.LABEL_REPEATED, type_name='.test.C.ChildrenEntry')
    grp = c.nested_type.add()
    grp.name = 'Grp'
    add_field(grp, 'v', 8, FD.TYPE_INT32)
    add_field(c, 'grp', 7, FD.TYPE_GROUP, type_name='.test.C.Grp')
    add_field(c, 'from', 9, FD.TYPE_STRING)
    add_field(c, 'chunks', 10, FD.TYPE_BYTES, FD.LABEL_REPEATED)
    ext_range = c.extension_range.add()
    ext_range.start = 100
    ext_range.end = 200

    blob = fdp.message_type.add()
    blob.name = 'Blob'
    add_field(blob, 'id', 1, FD.TYPE_INT32)
    ext_range = blob.extension_range.add()
    ext_range.start = 100
    ext_range.end = 200

    ext = fdp.extension.add()
    ext.name = 'ext_num'
    ext.number = 100
    ext.type = FD.TYPE_INT32
    ext.label = FD.LABEL_OPTIONAL
    ext.extendee = '.test.C'

    ext = fdp.extension.add()
    ext.name = 'ext_tags'
    ext.number = 101
    ext.type = FD.TYPE_STRING
    ext.label = FD.LABEL_REPEATED
    ext.extendee = '.test.C'

    ext = fdp.extension.add()
    ext.name = 'blob_note'
    ext.number = 100
    ext.type = FD.TYPE_STRING
    ext.label = FD.LABEL_OPTIONAL
    ext.extendee = '.test.Blob'
    return fdp


def p3_proto() -> descriptor_pb2.FileDescriptorProto:
    """
    proto3 schema equivalent to::

        package test3;
        message P {
            message Inner { int32 v = 1; }
            int32 plain = 1;
            optional int32 opt = 2;
            oneof choice {
                string name = 3;
                bytes blob = 4;
            }
            Inner inner = 5;
        }
    """
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = 'p3.proto'
    fdp.package = 'test3'
    fdp.syntax = 'proto3'

    p = fdp.message_type.add()
    p.name = 'P'
    inner = p.nested_type.add()
    inner.name = 'Inner'
    add_field(inner, 'v', 1, FD.TYPE_INT32)

    # Real oneofs come before the synthetic ones of proto3 optional fields
    p.oneof_decl.add().name = 'choice'
    p.oneof_decl.add().name = '_opt'
    add_field(p, 'plain', 1, FD.TYPE_INT32)
    add_field(p, 'opt', 2, FD.TYPE_INT32, oneof_index=1, proto3_optional=True)
    add_field(p, 'name', 3, FD.TYPE_STRING, oneof_index=0)
    add_field(p, 'blob', 4, FD.TYPE_BYTES, oneof_index=0)
    add_field(p, 'inner', 5, FD.TYPE_MESSAGE, type_name='.test3.P.Inner')
    return fdp


def other_proto() -> descriptor_pb2.FileDescriptorProto:
    """
    proto3 schema depending on p3.proto::

        import "p3.proto";
        package test3;
        message Holder {
            test3.P p = 1;
            repeated test3.P.Inner inners = 2;
        }
    """
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = 'other.proto'
    fdp.package = 'test3'
    fdp.syntax = 'proto3'
    fdp.dependency.append('p3.proto')

    holder = fdp.message_type.add()
    holder.name = 'Holder'
    add_field(holder, 'p', 1, FD.TYPE_MESSAGE, type_name='.test3.P')
    add_field(holder, 'inners', 2, FD.TYPE_MESSAGE, FD.LABEL_REPEATED, type_name='.test3.P.Inner')
    return fdp


def editions_proto() -> descriptor_pb2.FileDescriptorProto:
    """
    Edition 2023 schema with implicit presence as the file default::

        edition = "2023";
        package ed;
        option features.field_presence = IMPLICIT;
        message M {
            int32 n = 1;
            string s = 2 [features.field_presence = EXPLICIT];
            bytes raw = 3;
        }
    """
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = 'ed.proto'
    fdp.package = 'ed'
    fdp.syntax = 'editions'
    fdp.edition = descriptor_pb2.EDITION_2023
    fdp.options.features.field_presence = descriptor_pb2.FeatureSet.IMPLICIT

    m = fdp.message_type.add()
    m.name = 'M'
    add_field(m, 'n', 1, FD.TYPE_INT32)
    s = add_field(m, 's', 2, FD.TYPE_STRING)
    s.options.features.field_presence = descriptor_pb2.FeatureSet.EXPLICIT
    add_field(m, 'raw', 3, FD.TYPE_BYTES)
    return fdp


def clash_proto() -> descriptor_pb2.FileDescriptorProto:
    """
    proto2 schema where a nested and a top-level name flatten alike::

        package clash;
        message A {
            message B { optional int32 v = 1; }
            optional B b = 1;
        }
        message A_B { optional string w = 1; }
    """
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = 'clash.proto'
    fdp.package = 'clash'
    fdp.syntax = 'proto2'

    a = fdp.message_type.add()
    a.name = 'A'
    b = a.nested_type.add()
    b.name = 'B'
    add_field(b, 'v', 1, FD.TYPE_INT32)
    add_field(a, 'b', 1, FD.TYPE_MESSAGE, type_name='.clash.A.B')

    a_b = fdp.message_type.add()
    a_b.name = 'A_B'
    add_field(a_b, 'w', 1, FD.TYPE_STRING)
    return fdp


# =============================================================================
# Module Construction Helpers
# =============================================================================

def build_pb2_modules(fdps: List[descriptor_pb2.FileDescriptorProto]) -> Dict[str, types.ModuleType]:
    """
    Build ``*_pb2`` modules for a list of files, dependencies first.

    Uses a private descriptor pool and the same builder calls as
    protoc-generated Python code.
    """
    pool = descriptor_pool.DescriptorPool()
    modules = {}
    for fdp in fdps:
        module_name = pb2_module_name(fdp.name)
        file_desc = pool.AddSerializedFile(fdp.SerializeToString())
        module = types.ModuleType(module_name)
        module.DESCRIPTOR = file_desc
        builder.BuildTopDescriptorsAndMessages(file_desc, module_name, module.__dict__)
        modules[module_name] = module
    return modules


def load_source(name: str, source: str) -> types.ModuleType:
    """Execute generated source as a module named ``name``."""
    module = types.ModuleType(name)
    module.__file__ = name.replace('.', '/') + '.py'
    exec(compile(source, module.__file__, 'exec'), module.__dict__)
    return module


class GeneratedCode:
    """Result of generating and loading equality modules for some schemas."""

    def __init__(self, files: Dict[str, str], pb2: Dict[str, types.ModuleType],
                 modules: Dict[str, types.ModuleType]):
        self.files = files
        self.pb2 = pb2
        self.modules = modules

    def source(self, path: str) -> str:
        return self.files[path]

    def equal(self, proto_name: str) -> types.ModuleType:
        return self.modules[proto_name[:-6] + '_equal']

    def messages(self, proto_name: str) -> types.ModuleType:
        return self.pb2[pb2_module_name(proto_name)]


@pytest.fixture
def generate(monkeypatch):
    """
    Generate equality code for schemas and load it.

    Usage::

        code = generate([example_proto()], options=GeneratorOptions(...))
        code.equal('example.proto').B_equal(x, y)
    """
    def _generate(fdps, files_to_generate=None, options: Optional[GeneratorOptions] = None):
        if files_to_generate is None:
            files_to_generate = [f.name for f in fdps]
        files = generate_files(fdps, files_to_generate, options)

        pb2 = build_pb2_modules(fdps)
        for name, module in pb2.items():
            monkeypatch.setitem(sys.modules, name, module)

        modules = {}
        for path, content in files.items():
            name = path[:-3].replace('/', '.')
            if name.endswith('_test'):
                continue
            module = load_source(name, content)
            monkeypatch.setitem(sys.modules, name, module)
            modules[name] = module

        for path, content in files.items():
            name = path[:-3].replace('/', '.')
            if name.endswith('_test'):
                modules[name] = load_source(name, content)
        return GeneratedCode(files, pb2, modules)

    return _generate


@pytest.fixture
def example(generate):
    """Generated code for example.proto with default options."""
    return generate([example_proto()])


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "generator: marks tests related to code generation"
    )
    config.addinivalue_line(
        "markers", "runtime: marks tests of the runtime helpers used by generated code"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that run generated code end to end"
    )

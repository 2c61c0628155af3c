#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Equality code emitter
=====================

Generates, for every message of a .proto file, two Python functions that
deep-compare instances of the ``*_pb2`` message class:

- ``<Name>_equal(this, that)`` returns True or False.
- ``<Name>_verbose_equal(this, that)`` returns None when equal, otherwise a
  message describing the first difference found.

Both are produced by one traversal (``ComparisonEmitter``), parameterized by
a ``MismatchStrategy`` that decides what a mismatch turns into: ``return
False`` or ``return '<description>'``. Because the checks are emitted in the
same order for both variants, they always stop at the same first mismatch.

Comparison order
----------------
1. ``that is None``: equal only if ``this`` is None too.
2. ``that`` must be an instance of the message class.
3. ``this`` must be a non-None instance of the message class; identical
   objects are equal.
4. Fields, in declaration order:
   - presence-tracked scalars: ``HasField`` on both sides first, then value
   - plain scalars and bytes: value
   - nested messages and groups: ``HasField``, then the nested type's own
     equality function
   - repeated fields: length, then each element in index order
   - map fields: size, then each key in sorted order
5. Extensions, when the message declares extension ranges: tag by tag in
   both directions, or as one serialized blob.
6. Unknown fields, as raw bytes.
"""

from collections import OrderedDict
from typing import Callable, Iterator, List, Optional, Set, Tuple

from .classifier import FieldCategory, FieldClass, classify
from .descriptors import Field, ProtoFile, RecordType, TypeIndex, attribute, module_alias
from .options import GeneratorOptions, MessageOptions

RUNTIME_MODULE = 'equalgen.runtime'

INDENT = '    '

GENERATED_HEADER = (
    '# -*- coding: utf-8 -*-\n'
    '# Generated by protoc-gen-pyequal.  DO NOT EDIT!\n'
    '# source: %s\n'
)


# =============================================================================
# MISMATCH STRATEGIES
# =============================================================================

class MismatchStrategy:
    """
    Decides what a generated comparison does at a point of mismatch.

    Subclasses provide the function name suffix, the value returned when the
    two messages are equal, and the statement executed on a mismatch.
    """
    suffix = ''
    docstring = ''

    def function_name(self, record: RecordType) -> str:
        return record.func_prefix + self.suffix

    def success(self) -> str:
        raise NotImplementedError

    def mismatch(self, message: str, *args: str) -> str:
        """
        Statement reporting a mismatch and leaving the function.

        Args:
            message: Description of the mismatch, a ``str.format`` template
                     when ``args`` are given.
            args: Python expressions substituted into the template.
        """
        raise NotImplementedError


class BooleanStrategy(MismatchStrategy):
    suffix = '_equal'
    docstring = 'Return True if the two %s messages are structurally equal.'

    def success(self) -> str:
        return 'True'

    def mismatch(self, message: str, *args: str) -> str:
        return 'return False'


class VerboseStrategy(MismatchStrategy):
    suffix = '_verbose_equal'
    docstring = 'Describe the first difference between two %s messages, or return None.'

    def success(self) -> str:
        return 'None'

    def mismatch(self, message: str, *args: str) -> str:
        if not args:
            return 'return %r' % message
        return 'return %r.format(%s)' % (message, ', '.join(args))


# =============================================================================
# IMPORT TRACKING
# =============================================================================

class ModuleImports:
    """
    Accumulates the imports a generated module needs.

    Emitters ask for a name whenever they reference it; each standard library
    module, runtime helper and sibling module is imported exactly once.
    """

    def __init__(self):
        self.stdlib: Set[str] = set()
        self.helpers: 'OrderedDict[str, Set[str]]' = OrderedDict()
        self.modules: 'OrderedDict[str, str]' = OrderedDict()

    def use_stdlib(self, module: str) -> str:
        self.stdlib.add(module)
        return module

    def use_helper(self, name: str, module: str = RUNTIME_MODULE) -> str:
        self.helpers.setdefault(module, set()).add(name)
        return name

    def use_module(self, module: str) -> str:
        """Import a generated module under its mangled alias and return the alias."""
        alias = module_alias(module)
        self.modules[module] = alias
        return alias

    def render(self) -> Iterator[str]:
        for module in sorted(self.stdlib):
            yield 'import %s\n' % module
        if self.stdlib:
            yield '\n'
        for module, names in self.helpers.items():
            yield 'from %s import %s\n' % (module, ', '.join(sorted(names)))
        if self.helpers:
            yield '\n'
        for module, alias in self.modules.items():
            if '.' in module:
                package, name = module.rsplit('.', 1)
                yield 'from %s import %s as %s\n' % (package, name, alias)
            else:
                yield 'import %s as %s\n' % (module, alias)


# Returns a Python expression that is true when the two operands differ.
DelegateFn = Callable[[str, str, str], str]


def _builtin_unequal(type_name: str, this: str, that: str) -> str:
    return '%s != %s' % (this, that)


# =============================================================================
# COMPARISON EMITTER
# =============================================================================

class ComparisonEmitter:
    """
    Emits one comparison function for one message type.

    Attributes:
        record: The message type being compared.
        strategy: Boolean or verbose mismatch reporting.
        imports: Import accumulator of the module being generated.
        delegate: Produces the "nested messages differ" expression for a
                  fully qualified message type name.
        index: Type index used to recognize map fields.
        options: Effective options of ``record``.
        pb2_alias: Name under which the record's ``*_pb2`` module is imported.
    """

    def __init__(self, record: RecordType, strategy: MismatchStrategy, imports: ModuleImports,
                 delegate: Optional[DelegateFn] = None, index: Optional[TypeIndex] = None,
                 options: Optional[MessageOptions] = None, pb2_alias: Optional[str] = None):
        self.record = record
        self.strategy = strategy
        self.imports = imports
        self.delegate = delegate or _builtin_unequal
        self.index = index
        self.options = options or MessageOptions()
        self.pb2_alias = pb2_alias or imports.use_module(record.proto_file.pb2_module)

    def emit(self) -> Iterator[str]:
        """Yield the source lines of the comparison function."""
        yield from self._emit_prologue()
        for field in self.record.fields:
            yield from self._emit_field(field, classify(field, self.index))
        if self.record.has_extensions:
            if self.options.extensions_map:
                yield from self._emit_extension_map()
            else:
                yield from self._emit_extension_bytes()
        if self.options.unrecognized:
            yield from self._emit_unrecognized()
        yield INDENT + 'return %s\n' % self.strategy.success()

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    def _check(self, depth: int, condition: str, message: str, *args: str) -> Iterator[str]:
        """``if <condition>:`` followed by the mismatch statement."""
        yield INDENT * depth + 'if %s:\n' % condition
        yield INDENT * (depth + 1) + self.strategy.mismatch(message, *args) + '\n'

    def _unequal(self, fclass: FieldClass, this: str, that: str) -> str:
        """Expression that is true when two values of a field's category differ."""
        if fclass.delegates:
            return self.delegate(fclass.type_name, this, that)
        return '%s != %s' % (this, that)

    def _emit_prologue(self) -> Iterator[str]:
        name = self.record.name
        cls = self.record.class_path(self.pb2_alias)
        success = self.strategy.success()

        yield 'def %s(this, that):\n' % self.strategy.function_name(self.record)
        yield INDENT + '"""%s"""\n' % (self.strategy.docstring % name)
        yield INDENT + 'if that is None:\n'
        yield INDENT * 2 + 'if this is None:\n'
        yield INDENT * 3 + 'return %s\n' % success
        yield INDENT * 2 + self.strategy.mismatch('that == None && this != None') + '\n'
        yield '\n'
        yield from self._check(1, 'not isinstance(that, %s)' % cls,
                               'that is not of type %s' % name)
        yield from self._check(1, 'this is None',
                               'that is type %s but is not None && this == None' % name)
        yield from self._check(1, 'not isinstance(this, %s)' % cls,
                               'this is not of type %s' % name)
        yield INDENT + 'if this is that:\n'
        yield INDENT * 2 + 'return %s\n' % success

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    def _emit_field(self, field: Field, fclass: FieldClass) -> Iterator[str]:
        this = attribute('this', field.name)
        that = attribute('that', field.name)
        if fclass.category == FieldCategory.MAP:
            yield from self._emit_map(field, fclass, this, that)
        elif fclass.repeated:
            yield from self._emit_repeated(field, fclass, this, that)
        elif fclass.delegates:
            yield from self._emit_nested(field, fclass, this, that)
        else:
            yield from self._emit_scalar(field, fclass, this, that)

    def _presence_check(self, field: Field) -> Tuple[str, Iterator[str]]:
        has_this = 'this.HasField(%r)' % field.name
        has_that = 'that.HasField(%r)' % field.name
        return has_this, self._check(1, '%s != %s' % (has_this, has_that),
                                     'that.%s is not equal to this.%s' % (field.name, field.name))

    def _emit_scalar(self, field: Field, fclass: FieldClass, this: str, that: str) -> Iterator[str]:
        condition = self._unequal(fclass, this, that)
        if fclass.has_presence:
            has_this, check = self._presence_check(field)
            yield from check
            condition = '%s and %s' % (has_this, condition)
        yield from self._check(1, condition,
                               '%s this({!r}) Not Equal that({!r})' % field.name, this, that)

    def _emit_nested(self, field: Field, fclass: FieldClass, this: str, that: str) -> Iterator[str]:
        has_this, check = self._presence_check(field)
        yield from check
        yield from self._check(1, '%s and %s' % (has_this, self._unequal(fclass, this, that)),
                               '%s this({!r}) Not Equal that({!r})' % field.name, this, that)

    def _emit_repeated(self, field: Field, fclass: FieldClass, this: str, that: str) -> Iterator[str]:
        yield from self._check(1, 'len(%s) != len(%s)' % (this, that),
                               'that.%s is not equal to this.%s' % (field.name, field.name))
        this_item = '%s[i]' % this
        that_item = '%s[i]' % that
        yield INDENT + 'for i in range(len(%s)):\n' % this
        yield from self._check(2, self._unequal(fclass, this_item, that_item),
                               '%s this[{0}]({1!r}) Not Equal that[{0}]({2!r})' % field.name,
                               'i', this_item, that_item)

    def _emit_map(self, field: Field, fclass: FieldClass, this: str, that: str) -> Iterator[str]:
        # Equal sizes plus every key of this present in that means equal key sets.
        yield from self._check(1, 'len(%s) != len(%s)' % (this, that),
                               'that.%s is not equal to this.%s' % (field.name, field.name))
        this_item = '%s[k]' % this
        that_item = '%s[k]' % that
        yield INDENT + 'for k in sorted(%s):\n' % this
        # Check membership first: indexing a message map inserts missing keys.
        yield from self._check(2, 'k not in %s' % that,
                               '%s[{!r}] Not In that' % field.name, 'k')
        yield from self._check(2, self._unequal(fclass.value, this_item, that_item),
                               '%s this[{0!r}]({1!r}) Not Equal that[{0!r}]({2!r})' % field.name,
                               'k', this_item, that_item)

    # -------------------------------------------------------------------------
    # Extensions and unknown fields
    # -------------------------------------------------------------------------

    def _emit_extension_map(self) -> Iterator[str]:
        extension_map = self.imports.use_helper('extension_map')
        yield INDENT + 'this_extensions = %s(this)\n' % extension_map
        yield INDENT + 'that_extensions = %s(that)\n' % extension_map
        yield INDENT + 'for k in sorted(this_extensions):\n'
        yield from self._check(2, 'k not in that_extensions', 'Extensions[{}] Not In that', 'k')
        yield from self._check(2, 'this_extensions[k] != that_extensions[k]',
                               'Extensions this[{0}]({1!r}) Not Equal that[{0}]({2!r})',
                               'k', 'this_extensions[k]', 'that_extensions[k]')
        yield INDENT + 'for k in sorted(that_extensions):\n'
        yield from self._check(2, 'k not in this_extensions', 'Extensions[{}] Not In this', 'k')

    def _emit_blob(self, helper: str, label: str) -> Iterator[str]:
        helper = self.imports.use_helper(helper)
        this = '%s(this)' % helper
        that = '%s(that)' % helper
        yield from self._check(1, '%s != %s' % (this, that),
                               '%s this({!r}) Not Equal that({!r})' % label, this, that)

    def _emit_extension_bytes(self) -> Iterator[str]:
        yield from self._emit_blob('extension_bytes', 'Extensions')

    def _emit_unrecognized(self) -> Iterator[str]:
        yield from self._emit_blob('unrecognized_bytes', 'unrecognized')


# =============================================================================
# MODULE GENERATOR
# =============================================================================

class EqualModuleGenerator:
    """
    Generates the ``<base>_equal.py`` module of one .proto file.

    Attributes:
        proto_file: The file whose messages get comparison functions.
        index: Type index over every file of the run, for nested delegation.
        options: Generator options; resolved per message.
        generated_files: Names of the .proto files whose equal modules are
                         produced in the same run; nested types from those
                         files delegate to their generated functions.
    """

    def __init__(self, proto_file: ProtoFile, index: Optional[TypeIndex] = None,
                 options: Optional[GeneratorOptions] = None,
                 generated_files: Optional[Set[str]] = None):
        self.proto_file = proto_file
        self.index = index or TypeIndex([proto_file])
        self.options = options or GeneratorOptions()
        self.generated_files = generated_files or {proto_file.name}
        self.imports = ModuleImports()

    def targets(self) -> List[Tuple[RecordType, MessageOptions]]:
        """Messages that get at least one comparison function."""
        result = []
        for record in self.proto_file.records():
            if record.is_map_entry:
                continue
            opts = self.options.for_message(record)
            if opts.any_enabled:
                result.append((record, opts))
        return result

    def delegate(self, type_name: str, this: str, that: str) -> str:
        """Expression that is true when two nested messages of ``type_name`` differ."""
        record = self.index.find(type_name)
        if record is None or record.is_map_entry:
            return _builtin_unequal(type_name, this, that)

        source = record.proto_file.name
        if source == self.proto_file.name:
            prefix = ''
        elif source in self.generated_files:
            prefix = self.imports.use_module(record.proto_file.equal_module) + '.'
        else:
            return _builtin_unequal(type_name, this, that)

        opts = self.options.for_message(record)
        if opts.equal:
            return 'not %s%s(%s, %s)' % (prefix, BooleanStrategy().function_name(record), this, that)
        if opts.verbose_equal:
            return '%s%s(%s, %s) is not None' % (prefix, VerboseStrategy().function_name(record), this, that)
        return _builtin_unequal(type_name, this, that)

    def emit_functions(self) -> Iterator[str]:
        pb2_alias = self.imports.use_module(self.proto_file.pb2_module)
        first = True
        for record, opts in self.targets():
            strategies = []
            if opts.verbose_equal:
                strategies.append(VerboseStrategy())
            if opts.equal:
                strategies.append(BooleanStrategy())
            for strategy in strategies:
                if not first:
                    yield '\n\n'
                first = False
                emitter = ComparisonEmitter(record, strategy, self.imports, self.delegate,
                                            self.index, opts, pb2_alias)
                yield from emitter.emit()

    def generate(self) -> str:
        """Return the module source, or an empty string if nothing is enabled."""
        if not self.targets():
            return ''
        body = ''.join(self.emit_functions())
        header = GENERATED_HEADER % self.proto_file.name
        header += '"""Structural equality functions for the messages of %s."""\n\n' % self.proto_file.name
        header += ''.join(self.imports.render())
        return header + '\n\n' + body

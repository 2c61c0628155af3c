#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Generates ``<base>_equal_test.py``: one pytest round-trip test per message
that has the ``testgen`` option. Each test populates a random instance,
serializes and parses it through the message's own wire codec, and checks
that the generated comparison sees no difference.
"""

from typing import Iterator, List, Optional, Tuple

from .descriptors import ProtoFile, RecordType
from .emitter import GENERATED_HEADER, INDENT, BooleanStrategy, ModuleImports, VerboseStrategy
from .options import GeneratorOptions, MessageOptions


class TestModuleGenerator:
    """Generates the self-test module of one .proto file."""
    __test__ = False  # not a pytest test class

    def __init__(self, proto_file: ProtoFile, options: Optional[GeneratorOptions] = None):
        self.proto_file = proto_file
        self.options = options or GeneratorOptions()
        self.imports = ModuleImports()

    def targets(self) -> List[Tuple[RecordType, MessageOptions]]:
        result = []
        for record in self.proto_file.records():
            if record.is_map_entry:
                continue
            opts = self.options.for_message(record)
            if opts.testgen and opts.any_enabled:
                result.append((record, opts))
        return result

    def emit_test(self, record: RecordType, opts: MessageOptions) -> Iterator[str]:
        random_mod = self.imports.use_stdlib('random')
        populate = self.imports.use_helper('populate', 'equalgen.populate')
        pb2 = self.imports.use_module(self.proto_file.pb2_module)
        equal = self.imports.use_module(self.proto_file.equal_module)
        cls = record.class_path(pb2)

        if opts.verbose_equal:
            strategy = VerboseStrategy()
        else:
            strategy = BooleanStrategy()
        func = strategy.function_name(record)

        yield 'def test_%s():\n' % func
        yield INDENT + 'popr = %s.Random()\n' % random_mod
        yield INDENT + 'p = %s(%s, popr)\n' % (populate, cls)
        yield INDENT + 'data = p.SerializeToString()\n'
        yield INDENT + 'msg = %s()\n' % cls
        yield INDENT + 'msg.ParseFromString(data)\n'
        if opts.verbose_equal:
            yield INDENT + 'err = %s.%s(p, msg)\n' % (equal, func)
            yield INDENT + "assert err is None, '%r !VerboseEqual %r, since %s' % (msg, p, err)\n"
        else:
            yield INDENT + "assert %s.%s(p, msg), '%%r !Equal %%r' %% (msg, p)\n" % (equal, func)

    def generate(self) -> str:
        """Return the test module source, or an empty string if no message asks for tests."""
        targets = self.targets()
        if not targets:
            return ''
        body = []
        for record, opts in targets:
            if body:
                body.append('\n\n')
            body.extend(self.emit_test(record, opts))
        header = GENERATED_HEADER % self.proto_file.name
        header += '"""Round-trip tests for the equality functions of %s."""\n\n' % self.proto_file.name
        header += ''.join(self.imports.render())
        return header + '\n\n' + ''.join(body)

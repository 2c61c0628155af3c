#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Host driver for the equality generator.

Two entry points:

- ``main_plugin``: protoc plugin (``protoc-gen-pyequal``). protoc writes a
  CodeGeneratorRequest to stdin and reads the CodeGeneratorResponse back::

      protoc --plugin=protoc-gen-pyequal --pyequal_out=testgen_all:out example.proto

- ``main_cli``: standalone command, which runs protoc itself (or reads a
  descriptor set written by ``protoc -o``) and writes the output files::

      pyequal -I protos -D out --testgen example.proto
"""

import argparse
import os
import os.path
import sys
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from google.protobuf.compiler import plugin_pb2

from . import proto
from .descriptors import ProtoFile, TypeIndex
from .emitter import EqualModuleGenerator
from .options import GeneratorOptions, parse_parameter
from .testgen import TestModuleGenerator


def generate_files(fdescs: Sequence, files_to_generate: Sequence[str],
                   options: Optional[GeneratorOptions] = None) -> Dict[str, str]:
    """
    Generate the output files for a set of .proto files.

    Args:
        fdescs: FileDescriptorProto messages of the requested files and all
                of their dependencies.
        files_to_generate: Names of the files to produce output for.
        options: Generator options.

    Returns:
        Mapping of output path to file content, in generation order.
    """
    options = options or GeneratorOptions()
    index = TypeIndex.from_descriptors(fdescs)

    missing = [name for name in files_to_generate if name not in index.files]
    if missing:
        raise RuntimeError("Descriptors missing for: " + ', '.join(missing))

    # Files whose equal module has at least one function; nested types from
    # these files are compared through their generated functions.
    generated = set()
    for name in files_to_generate:
        if EqualModuleGenerator(index.files[name], index, options).targets():
            generated.add(name)

    results = {}
    for name in files_to_generate:
        proto_file = index.files[name]
        if name not in generated:
            if options.verbose:
                sys.stderr.write("Nothing to generate for " + name + "\n")
            continue

        content = EqualModuleGenerator(proto_file, index, options, generated).generate()
        results[proto_file.base_path + '_equal.py'] = content

        tests = TestModuleGenerator(proto_file, options).generate()
        if tests:
            results[proto_file.base_path + '_equal_test.py'] = tests

        if options.verbose:
            for record in proto_file.records():
                if not record.is_map_entry:
                    sys.stderr.write("Options for " + record.full_name + ": " +
                                     str(options.for_message(record)) + "\n")
    return results


def process_request(request: plugin_pb2.CodeGeneratorRequest) -> plugin_pb2.CodeGeneratorResponse:
    """Handle one protoc plugin request. Errors are reported in ``response.error``."""
    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL

    try:
        options, extra = parse_parameter(request.parameter)
        if extra:
            raise ValueError("Unknown plugin parameter(s): " + ', '.join(sorted(extra)))
        if not options.options_path:
            options.options_path.append(os.getcwd())
        options.load_options_files()

        files = generate_files(list(request.proto_file), list(request.file_to_generate), options)
    except (ValueError, RuntimeError, OSError) as e:
        response.error = str(e)
        return response

    for name, content in files.items():
        out = response.file.add()
        out.name = name
        out.content = content
    return response


def main_plugin():
    """Main function when invoked as a protoc plugin."""
    data = sys.stdin.buffer.read()
    request = plugin_pb2.CodeGeneratorRequest.FromString(data)
    response = process_request(request)
    sys.stdout.buffer.write(response.SerializeToString())
    return 0


def _match_file_names(file_names: List[str], sources: Sequence[str]) -> List[str]:
    """Map .proto paths given on the command line to descriptor file names."""
    result = []
    for src in sources:
        src_norm = src.replace(os.sep, '/')
        matches = [name for name in file_names
                   if src_norm == name or src_norm.endswith('/' + name)]
        if not matches:
            raise RuntimeError(f"Could not find descriptor for {src}")
        # Longest match is the one relative to the innermost include path
        result.append(max(matches, key=len))
    return result


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Generate structural equality functions for protobuf messages'
    )
    parser.add_argument('files', nargs='+', help='.proto files to generate equality functions for')
    parser.add_argument('-I', '--proto-path', dest='include', action='append', default=[],
                        help='Include path for proto files (can be given multiple times)')
    parser.add_argument('-D', '--output-dir', default='.',
                        help='Output directory (default: current directory)')
    parser.add_argument('-f', '--options-file', dest='options_files', action='append', default=[],
                        help='Options file with per-message settings (can be given multiple times)')
    parser.add_argument('--descriptor-set',
                        help='Read a FileDescriptorSet written by protoc -o instead of running protoc')
    parser.add_argument('--no-equal', dest='equal', action='store_false',
                        help='Do not generate the boolean <Name>_equal functions')
    parser.add_argument('--no-verbose-equal', dest='verbose_equal', action='store_false',
                        help='Do not generate the diagnostic <Name>_verbose_equal functions')
    parser.add_argument('--testgen', action='store_true',
                        help='Also generate a round-trip test module per file')
    parser.add_argument('--no-extensions-map', dest='extensions_map', action='store_false',
                        help='Compare extensions as one serialized blob instead of tag by tag')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Print progress information to stderr')
    return parser


def main_cli(argv=None):
    """Main function when invoked from the command line."""
    args = build_arg_parser().parse_args(argv)

    options = GeneratorOptions(
        options_files=list(args.options_files),
        options_path=list(args.include) + sorted({os.path.dirname(f) or '.' for f in args.files}),
        verbose=args.verbose,
    )
    options.defaults = replace(options.defaults, equal=args.equal, verbose_equal=args.verbose_equal,
                               testgen=args.testgen, extensions_map=args.extensions_map)

    try:
        options.load_options_files()
        if args.descriptor_set:
            file_set = proto.read_file_descriptor_set(args.descriptor_set)
        else:
            file_set = proto.load_file_descriptor_set(args.files, args.include)
        fdescs = list(file_set.file)
        names = _match_file_names([f.name for f in fdescs], args.files)
        files = generate_files(fdescs, names, options)
    except (ValueError, RuntimeError, OSError) as e:
        sys.stderr.write("Error: " + str(e) + "\n")
        return 1

    for name, content in files.items():
        path = os.path.join(args.output_dir, name)
        if options.verbose:
            sys.stderr.write("Writing to " + path + "\n")
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
    return 0


if __name__ == '__main__':
    sys.exit(main_cli())

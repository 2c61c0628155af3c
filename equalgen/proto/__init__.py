'''This file compiles .proto sources into descriptor sets for the generator.'''

import os
import os.path
import sys
import traceback
from tempfile import TemporaryDirectory

from google.protobuf import descriptor_pb2

from ._utils import invoke_protoc, print_versions


def build_descriptor_set(protosrc, include_paths=None, tmpdir=None):
    '''Run protoc on one or more .proto files and return the raw
    FileDescriptorSet bytes, including all imported files.
    protosrc can be a single path or list/tuple of paths.
    Raises RuntimeError if protoc fails.
    '''

    # Support both a single path and an iterable of paths
    if isinstance(protosrc, (list, tuple)):
        sources = list(protosrc)
    else:
        sources = [protosrc]

    search_paths = [os.path.abspath(p) for p in (include_paths or [])]
    for src in sources:
        src_dir = os.path.dirname(os.path.abspath(src))
        if src_dir not in search_paths:
            search_paths.append(src_dir)

    with TemporaryDirectory(prefix='equalgen-', dir=tmpdir) as workdir:
        desc_file = os.path.join(workdir, 'descriptor.pb')
        cmd = [
            'protoc',
            '--descriptor_set_out=' + desc_file,
            '--include_imports',
            '--include_source_info',
        ]
        cmd += ['-I' + path for path in search_paths if os.path.isdir(path)]
        cmd += [_relative_to_include(src, search_paths) for src in sources]

        try:
            status = invoke_protoc(argv=cmd)
        except Exception:
            sys.stderr.write("Failed to run protoc: " + ' '.join(cmd) + "\n")
            sys.stderr.write(traceback.format_exc() + "\n")
            print_versions()
            raise RuntimeError("protoc could not be invoked")

        if status != 0 or not os.path.isfile(desc_file):
            raise RuntimeError(f"protoc failed with status {status}: {' '.join(cmd)}")

        with open(desc_file, 'rb') as f:
            return f.read()


def load_file_descriptor_set(protosrc, include_paths=None):
    '''Compile .proto files and parse the result into a FileDescriptorSet.'''
    file_set = descriptor_pb2.FileDescriptorSet()
    file_set.ParseFromString(build_descriptor_set(protosrc, include_paths))
    return file_set


def read_file_descriptor_set(path):
    '''Load a FileDescriptorSet previously written by protoc -o.'''
    file_set = descriptor_pb2.FileDescriptorSet()
    with open(path, 'rb') as f:
        file_set.ParseFromString(f.read())
    return file_set


def _relative_to_include(src, search_paths):
    '''protoc wants inputs named relative to one of the include paths.'''
    abs_src = os.path.abspath(src)
    for path in search_paths:
        if abs_src.startswith(path + os.sep):
            return os.path.relpath(abs_src, path).replace(os.sep, '/')
    return src

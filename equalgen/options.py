#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Generator options.

Options come from three layers, later layers overriding earlier ones:

1. Built-in defaults (both comparison variants on, extensions compared as a
   tag map, no self-tests).
2. Generator-wide settings: the protoc plugin parameter string
   (``--pyequal_out=testgen,extensions_map=false:outdir``) or the equivalent
   command line flags.
3. Options files in the nanopb ``.options`` format, one rule per line::

       # pattern         option:value ...
       mypkg.B           testgen:true
       *.Legacy*         verbose_equal:false extensions_map:false

   Patterns are ``fnmatch`` globs matched against the message's fully
   qualified name and against its file-relative name. For each message all
   matching lines apply in file order.
"""

import fnmatch
import os.path
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from .descriptors import RecordType

# Per-message boolean options and their defaults
MESSAGE_OPTION_DEFAULTS = {
    'equal': True,
    'verbose_equal': True,
    'testgen': False,
    'extensions_map': True,
    'unrecognized': True,
}

_TRUE_WORDS = ('1', 'true', 'yes', 'on', '')
_FALSE_WORDS = ('0', 'false', 'no', 'off')


def parse_bool(value: str, where: str = '') -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ValueError(f"{where}invalid boolean value '{value}'")


@dataclass(frozen=True)
class MessageOptions:
    """Enablement signals for one RecordType."""
    equal: bool = True
    verbose_equal: bool = True
    testgen: bool = False
    extensions_map: bool = True
    unrecognized: bool = True

    @property
    def any_enabled(self) -> bool:
        return self.equal or self.verbose_equal


@dataclass
class OptionRule:
    pattern: str
    values: Dict[str, bool]
    source: str = ''

    def matches(self, record: RecordType) -> bool:
        return (fnmatch.fnmatchcase(record.full_name, self.pattern) or
                fnmatch.fnmatchcase(record.name, self.pattern))


@dataclass
class GeneratorOptions:
    """
    Options for a whole generator run.

    Attributes:
        defaults: Message options applied before any options file rule.
        rules: Options file rules, in the order they were read.
        options_files: Explicit options files to read.
        options_path: Directories searched for ``<base>.options`` files.
        verbose: Write progress information to stderr.
    """
    defaults: MessageOptions = field(default_factory=MessageOptions)
    rules: List[OptionRule] = field(default_factory=list)
    options_files: List[str] = field(default_factory=list)
    options_path: List[str] = field(default_factory=list)
    verbose: bool = False
    _file_rules: Dict[str, List[OptionRule]] = field(default_factory=dict, repr=False)

    def load_options_files(self) -> None:
        """Read the explicitly requested options files into ``rules``."""
        for path in self.options_files:
            self.rules.extend(read_options_file(path))

    def file_rules(self, proto_name: str) -> List[OptionRule]:
        """Rules of the ``<base>.options`` file belonging to ``proto_name``, if any."""
        if proto_name not in self._file_rules:
            path = find_options_file(proto_name, self.options_path)
            if path and path not in self.options_files:
                self._file_rules[proto_name] = read_options_file(path)
            else:
                self._file_rules[proto_name] = []
        return self._file_rules[proto_name]

    def for_message(self, record: RecordType) -> MessageOptions:
        """
        Resolve the effective options of one message: defaults, then the
        rules of its own ``.options`` file, then explicit options files.
        """
        result = self.defaults
        for rule in self.file_rules(record.proto_file.name) + self.rules:
            if rule.matches(record):
                result = replace(result, **rule.values)
        return result


def parse_option_values(items: List[str], where: str = '') -> Dict[str, bool]:
    """Parse ``name:value`` tokens into a dict of message options."""
    values = {}
    for item in items:
        if ':' in item:
            name, value = item.split(':', 1)
        else:
            name, value = item, ''
        name = name.strip()
        if name not in MESSAGE_OPTION_DEFAULTS:
            raise ValueError(f"{where}unknown option '{name}'")
        values[name] = parse_bool(value, where)
    return values


def parse_options_text(text: str, source: str = '<string>') -> List[OptionRule]:
    """Parse the contents of an options file."""
    rules = []
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.split('#', 1)[0].strip()
        if not line:
            continue
        parts = line.split()
        where = f"{source}:{lineno}: "
        if len(parts) < 2:
            raise ValueError(f"{where}expected '<pattern> option:value', got '{line}'")
        rules.append(OptionRule(parts[0], parse_option_values(parts[1:], where), f"{source}:{lineno}"))
    return rules


def read_options_file(path: str) -> List[OptionRule]:
    with open(path, 'r', encoding='utf-8') as f:
        return parse_options_text(f.read(), path)


def find_options_file(proto_name: str, search_path: List[str]) -> Optional[str]:
    """Look for ``<base>.options`` next to the proto in each search directory."""
    base = os.path.splitext(proto_name)[0] + '.options'
    for directory in search_path:
        candidate = os.path.join(directory, base)
        if os.path.isfile(candidate):
            return candidate
    return None


def parse_parameter(parameter: str) -> Tuple[GeneratorOptions, Dict[str, str]]:
    """
    Parse a protoc plugin parameter string.

    Recognized keys: the message options (also accepted with an ``_all``
    suffix, as in ``testgen_all``), ``options_file`` (repeatable, separated
    by ``;`` inside one value), ``options_path`` and ``verbose``. Unknown
    keys are returned unparsed in the second element.
    """
    options = GeneratorOptions()
    values = {}
    extra = {}
    for part in parameter.split(','):
        part = part.strip()
        if not part:
            continue
        if '=' in part:
            key, value = part.split('=', 1)
        else:
            key, value = part, ''
        key = key.strip()
        if key.endswith('_all') and key[:-4] in MESSAGE_OPTION_DEFAULTS:
            key = key[:-4]
        if key in MESSAGE_OPTION_DEFAULTS:
            values[key] = parse_bool(value, 'parameter: ')
        elif key == 'options_file':
            options.options_files.extend(p for p in value.split(';') if p)
        elif key == 'options_path':
            options.options_path.extend(p for p in value.split(';') if p)
        elif key == 'verbose':
            options.verbose = parse_bool(value, 'parameter: ')
        else:
            extra[key] = value.strip()
    options.defaults = replace(options.defaults, **values)
    return options, extra

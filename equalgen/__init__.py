'''Structural equality code generator for protobuf messages.'''

from .classifier import FieldCategory, FieldClass, classify
from .descriptors import Field, ProtoFile, RecordType, TypeIndex
from .emitter import BooleanStrategy, ComparisonEmitter, EqualModuleGenerator, VerboseStrategy
from .options import GeneratorOptions, MessageOptions

__version__ = '0.1.0'

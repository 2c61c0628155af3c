#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Field classification for the equality generator.

Every field of a message falls into one comparison category, which decides
how the generated code compares it:

- SCALAR: numbers, bools, strings and enums; compared by value.
- BYTES: byte strings; compared by content.
- MESSAGE / GROUP: nested messages; compared by delegating to the nested
  type's own equality.
- MAP: protobuf ``map<K, V>`` fields; compared key by key.

Repetition and presence tracking are reported alongside the category. The
classification depends only on static schema metadata and cannot fail:
malformed schemas are rejected by protoc before they reach us.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .descriptors import FeatureSet, Field, FieldDescriptorProto, TypeIndex


class FieldCategory(Enum):
    """Comparison category of a field."""
    SCALAR = "scalar"
    BYTES = "bytes"
    MESSAGE = "message"
    GROUP = "group"
    MAP = "map"


@dataclass(frozen=True)
class FieldClass:
    """
    Result of classifying one field.

    Attributes:
        category: How values of the field are compared.
        repeated: The field is compared length first, then element by element.
        has_presence: Singular scalar/bytes field whose ``HasField`` state
                      must agree on both sides before values are compared.
        type_name: Fully qualified message type the comparison delegates to,
                   for MESSAGE/GROUP fields and message-valued maps.
        value: Classification of the map value, for MAP fields.
    """
    category: FieldCategory
    repeated: bool = False
    has_presence: bool = False
    type_name: Optional[str] = None
    value: Optional['FieldClass'] = None

    @property
    def delegates(self) -> bool:
        return self.category in (FieldCategory.MESSAGE, FieldCategory.GROUP)


def _base_category(field_type: int) -> FieldCategory:
    if field_type == FieldDescriptorProto.TYPE_MESSAGE:
        return FieldCategory.MESSAGE
    if field_type == FieldDescriptorProto.TYPE_GROUP:
        return FieldCategory.GROUP
    if field_type == FieldDescriptorProto.TYPE_BYTES:
        return FieldCategory.BYTES
    return FieldCategory.SCALAR


def tracks_presence(field: Field) -> bool:
    """
    Whether a singular scalar/bytes field carries an explicit "is set" bit.

    proto2 scalars always do, and so do members of a oneof. In proto3 only
    fields declared ``optional`` do; plain proto3 scalars have implicit
    presence and are compared by value alone. Editions files resolve the
    ``field_presence`` feature: only IMPLICIT turns presence off.
    """
    if field.is_repeated():
        return False
    if _base_category(field.type) not in (FieldCategory.SCALAR, FieldCategory.BYTES):
        return False
    if field.oneof_index is not None:
        return True
    if field.syntax == 'proto3':
        return field.proto3_optional
    if field.syntax == 'editions':
        return field.feature('field_presence') != FeatureSet.IMPLICIT
    return True


def classify(field: Field, index: Optional[TypeIndex] = None) -> FieldClass:
    """
    Determine the comparison category and presence semantics of a field.

    Args:
        field: The field to classify.
        index: Type index used to recognize map fields (a repeated field whose
               message type is a map entry). Without an index, map fields
               are classified as repeated messages.

    Returns:
        A FieldClass describing how the generated code compares the field.
    """
    category = _base_category(field.type)
    type_name = field.type_name.lstrip('.') if category in (FieldCategory.MESSAGE, FieldCategory.GROUP) else None

    if field.is_repeated() and category == FieldCategory.MESSAGE and index is not None:
        entry = index.find(field.type_name)
        if entry is not None and entry.is_map_entry:
            value_field = [f for f in entry.fields if f.name == 'value'][0]
            return FieldClass(FieldCategory.MAP, value=classify(value_field, index))

    return FieldClass(
        category=category,
        repeated=field.is_repeated(),
        has_presence=tracks_presence(field),
        type_name=type_name,
    )

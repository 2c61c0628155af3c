#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Random message population for generated self-tests.

``populate(MessageClass, rng)`` builds an instance with randomly chosen
fields set to random values: scalars across the full range of their wire
type, strings and bytes of random length, enum values from the enum's
declared values, nested messages down to a depth limit, repeated fields and
maps with a few entries, one member (or none) of each oneof, and any
extensions of the message registered in its descriptor pool.

Example usage:
    rng = random.Random(42)
    msg = populate(example_pb2.B, rng)
    data = msg.SerializeToString()
"""

import random
import string
from typing import Any, Optional

from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import Message

# Number of elements generated for repeated and map fields
MAX_REPEATED = 5

# Nested message fields below this depth are left unset
MAX_DEPTH = 3

# Probability that an optional singular field is set
SET_PROBABILITY = 0.75

_STRING_CHARS = string.ascii_letters + string.digits + string.punctuation

_INT_RANGES = {
    FieldDescriptor.TYPE_INT32: (-(2**31), 2**31 - 1),
    FieldDescriptor.TYPE_SINT32: (-(2**31), 2**31 - 1),
    FieldDescriptor.TYPE_SFIXED32: (-(2**31), 2**31 - 1),
    FieldDescriptor.TYPE_INT64: (-(2**63), 2**63 - 1),
    FieldDescriptor.TYPE_SINT64: (-(2**63), 2**63 - 1),
    FieldDescriptor.TYPE_SFIXED64: (-(2**63), 2**63 - 1),
    FieldDescriptor.TYPE_UINT32: (0, 2**32 - 1),
    FieldDescriptor.TYPE_FIXED32: (0, 2**32 - 1),
    FieldDescriptor.TYPE_UINT64: (0, 2**64 - 1),
    FieldDescriptor.TYPE_FIXED64: (0, 2**64 - 1),
}


def populate(message_class, rng: Optional[random.Random] = None, max_depth: int = MAX_DEPTH) -> Message:
    """
    Create a randomly populated instance of a protobuf message class.

    Args:
        message_class: A generated message class (e.g. ``example_pb2.B``).
        rng: Random number generator; a fresh unseeded one if omitted.
        max_depth: Nesting depth below which message fields stay unset.

    Returns:
        The populated message. Required fields are always set, so the result
        serializes without errors.
    """
    rng = rng or random.Random()
    msg = message_class()
    _populate_message(msg, rng, max_depth)
    return msg


def _is_map(fd) -> bool:
    return (fd.type == FieldDescriptor.TYPE_MESSAGE and
            fd.message_type.GetOptions().map_entry)


def _random_scalar(fd, rng: random.Random) -> Any:
    """Generate a random value for a non-message field."""
    if fd.type in _INT_RANGES:
        min_val, max_val = _INT_RANGES[fd.type]
        return rng.randint(min_val, max_val)
    if fd.type == FieldDescriptor.TYPE_FLOAT:
        return rng.uniform(-3.4e38, 3.4e38)
    if fd.type == FieldDescriptor.TYPE_DOUBLE:
        return rng.uniform(-1.7e308, 1.7e308)
    if fd.type == FieldDescriptor.TYPE_BOOL:
        return rng.choice([True, False])
    if fd.type == FieldDescriptor.TYPE_STRING:
        length = rng.randint(0, 20)
        return ''.join(rng.choice(_STRING_CHARS) for _ in range(length))
    if fd.type == FieldDescriptor.TYPE_BYTES:
        length = rng.randint(0, 20)
        return bytes(rng.randint(0, 255) for _ in range(length))
    if fd.type == FieldDescriptor.TYPE_ENUM:
        return rng.choice([v.number for v in fd.enum_type.values])
    raise ValueError(f"Unsupported field type {fd.type} for {fd.full_name}")


def _populate_message(msg: Message, rng: random.Random, depth: int) -> None:
    desc = msg.DESCRIPTOR

    # Pick at most one member of each oneof
    skipped = set()
    for oneof in desc.oneofs:
        chosen = rng.choice(list(oneof.fields) + [None])
        for fd in oneof.fields:
            if fd is not chosen:
                skipped.add(fd.full_name)

    for fd in desc.fields:
        if fd.full_name in skipped:
            continue
        _populate_field(msg, fd, rng, depth, in_oneof=fd.containing_oneof is not None)

    if desc.is_extendable:
        for ext in desc.file.pool.FindAllExtensions(desc):
            if rng.random() < 0.5:
                _populate_field(msg, ext, rng, depth)


def _field_value(msg: Message, fd):
    if fd.is_extension:
        return msg.Extensions[fd]
    return getattr(msg, fd.name)


def _set_value(msg: Message, fd, value) -> None:
    if fd.is_extension:
        msg.Extensions[fd] = value
    else:
        setattr(msg, fd.name, value)


def _populate_field(msg: Message, fd, rng: random.Random, depth: int, in_oneof: bool = False) -> None:
    is_message = fd.type in (FieldDescriptor.TYPE_MESSAGE, FieldDescriptor.TYPE_GROUP)
    required = fd.is_required

    if fd.is_repeated:
        if is_message and depth <= 0:
            return
        count = rng.randint(0, MAX_REPEATED)
        container = _field_value(msg, fd)
        if _is_map(fd):
            _populate_map(container, fd, rng, depth, count)
        elif is_message:
            for _ in range(count):
                _populate_message(container.add(), rng, depth - 1)
        else:
            container.extend(_random_scalar(fd, rng) for _ in range(count))
        return

    # A chosen oneof member is always set, others by chance
    if not required and not in_oneof and rng.random() >= SET_PROBABILITY:
        return

    if is_message:
        if depth <= 0 and not required:
            return
        sub = _field_value(msg, fd)
        _populate_message(sub, rng, depth - 1)
        sub.SetInParent()
    else:
        _set_value(msg, fd, _random_scalar(fd, rng))


def _populate_map(container, fd, rng: random.Random, depth: int, count: int) -> None:
    key_fd = fd.message_type.fields_by_name['key']
    value_fd = fd.message_type.fields_by_name['value']
    for _ in range(count):
        key = _random_scalar(key_fd, rng)
        if value_fd.type == FieldDescriptor.TYPE_MESSAGE:
            _populate_message(container[key], rng, depth - 1)
        else:
            container[key] = _random_scalar(value_fd, rng)

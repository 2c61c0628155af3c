"""
Runtime helpers imported by generated ``*_equal.py`` modules.

Generated comparison functions only reference the helpers they need; the
generator tracks which ones were used and imports each of them once.
"""

from typing import Any, Dict

from google.protobuf.message import Message


def unrecognized_bytes(msg: Message) -> bytes:
    """
    Return the wire data of the fields ``msg`` does not recognize.

    Works on a scratch copy of the message with every known field and
    extension cleared, so that serializing it yields only the preserved
    unknown fields, in the order they were parsed.
    """
    scratch = type(msg)()
    scratch.CopyFrom(msg)
    for fd, _ in scratch.ListFields():
        if fd.is_extension:
            scratch.ClearExtension(fd)
        else:
            scratch.ClearField(fd.name)
    return scratch.SerializePartialToString()


def extension_map(msg: Message) -> Dict[int, Any]:
    """Map of extension field number to value for every extension set on ``msg``."""
    return {fd.number: value for fd, value in msg.ListFields() if fd.is_extension}


def extension_bytes(msg: Message) -> bytes:
    """
    Serialized form of only the extensions set on ``msg``.

    Used when extensions are compared as an opaque blob instead of tag by tag.
    """
    scratch = type(msg)()
    for fd, value in msg.ListFields():
        if not fd.is_extension:
            continue
        if fd.is_repeated:
            scratch.Extensions[fd].extend(value)
        elif fd.cpp_type == fd.CPPTYPE_MESSAGE:
            scratch.Extensions[fd].CopyFrom(value)
        else:
            scratch.Extensions[fd] = value
    return scratch.SerializePartialToString(deterministic=True)

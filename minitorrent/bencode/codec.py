"""
Bencode codec.

Values map onto four Python types: ``int``, ``bytes``, ``list`` and ``dict`` with
``bytes`` keys. Byte strings are never decoded as text here; callers that want text
decode explicitly.
"""

from typing import Any, TypeAlias
from minitorrent.common.errors import MalformedBencodeError

BencodeValue: TypeAlias = int | bytes | list["BencodeValue"] | dict[bytes, "BencodeValue"]

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_DIGITS = b"0123456789"

# deepest list/dict nesting accepted by decode
MAX_DEPTH = 256


def decode(data: bytes, offset: int = 0) -> tuple[BencodeValue, int]:
    """
    Decode the value starting at ``offset``.

    Returns the value and the number of bytes it occupies, so callers can
    continue decoding right after it.
    """
    if offset >= len(data):
        raise MalformedBencodeError("Unexpected end of input", offset)
    value, end = _decode_at(data, offset, 0)
    return value, end - offset


def decode_exact(data: bytes) -> BencodeValue:
    """Decode a single value that must span all of ``data``."""
    value, consumed = decode(data)
    if consumed != len(data):
        raise MalformedBencodeError(
            f"Trailing data after value ({len(data) - consumed} bytes)", consumed
        )
    return value


def _decode_at(data: bytes, pos: int, depth: int) -> tuple[BencodeValue, int]:
    if pos >= len(data):
        raise MalformedBencodeError("Unexpected end of input", pos)
    if depth > MAX_DEPTH:
        raise MalformedBencodeError("Nesting too deep", pos)

    lead = data[pos]
    if lead in _DIGITS:
        return _decode_string(data, pos)
    elif lead == ord("i"):
        return _decode_int(data, pos)
    elif lead == ord("l"):
        return _decode_list(data, pos, depth)
    elif lead == ord("d"):
        return _decode_dict(data, pos, depth)
    raise MalformedBencodeError(f"Invalid leading byte {bytes([lead])!r}", pos)


def _decode_string(data: bytes, pos: int) -> tuple[bytes, int]:
    colon = data.find(b":", pos)
    if colon == -1:
        raise MalformedBencodeError("String length not terminated by ':'", pos)

    length_str = data[pos:colon]
    if not length_str.isdigit():
        raise MalformedBencodeError(f"Invalid string length {length_str!r}", pos)
    if len(length_str) > 1 and length_str.startswith(b"0"):
        raise MalformedBencodeError(f"String length has leading zeros {length_str!r}", pos)

    length = int(length_str)
    start = colon + 1
    end = start + length
    if end > len(data):
        raise MalformedBencodeError(
            f"String of length {length} runs past end of input", pos
        )
    return data[start:end], end


def _decode_int(data: bytes, pos: int) -> tuple[int, int]:
    end = data.find(b"e", pos + 1)
    if end == -1:
        raise MalformedBencodeError("Unterminated integer", pos)

    digits = data[pos + 1 : end]
    unsigned = digits[1:] if digits.startswith(b"-") else digits
    if not unsigned.isdigit():
        raise MalformedBencodeError(f"Invalid integer {digits!r}", pos)
    if digits == b"-0" or (len(unsigned) > 1 and unsigned.startswith(b"0")):
        raise MalformedBencodeError(f"Non-minimal integer {digits!r}", pos)

    value = int(digits)
    if not INT64_MIN <= value <= INT64_MAX:
        raise MalformedBencodeError(f"Integer out of 64-bit range {digits!r}", pos)
    return value, end + 1


def _decode_list(data: bytes, pos: int, depth: int) -> tuple[list[BencodeValue], int]:
    items = []
    cursor = pos + 1
    while cursor < len(data) and data[cursor] != ord("e"):
        item, cursor = _decode_at(data, cursor, depth + 1)
        items.append(item)
    if cursor >= len(data):
        raise MalformedBencodeError("Unterminated list", pos)
    return items, cursor + 1


def _decode_dict(data: bytes, pos: int, depth: int) -> tuple[dict[bytes, BencodeValue], int]:
    result = {}
    cursor = pos + 1
    while cursor < len(data) and data[cursor] != ord("e"):
        if data[cursor] not in _DIGITS:
            raise MalformedBencodeError("Dictionary key is not a string", cursor)
        key, cursor = _decode_string(data, cursor)
        if key in result:
            raise MalformedBencodeError(f"Duplicate dictionary key {key!r}", cursor)
        result[key], cursor = _decode_at(data, cursor, depth + 1)
    if cursor >= len(data):
        raise MalformedBencodeError("Unterminated dictionary", pos)
    return result, cursor + 1


def encode(value: Any) -> bytes:
    """Encode a value; dictionary keys are always written in sorted byte order."""
    chunks: list[bytes] = []
    _encode_into(value, chunks)
    return b"".join(chunks)


def encode_canonical(dictionary: dict) -> bytes:
    """
    Canonical encoding of a dictionary, as used for the info hash.

    The output only depends on the key/value pairs, never on the order in which
    the keys were inserted.
    """
    if not isinstance(dictionary, dict):
        raise TypeError(f"Expected a dict, got {type(dictionary).__name__}")
    return encode(dictionary)


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _encode_into(value: Any, chunks: list[bytes]) -> None:
    match value:
        case bool():
            raise TypeError("Cannot bencode a bool")
        case int():
            if not INT64_MIN <= value <= INT64_MAX:
                raise ValueError(f"Integer out of 64-bit range: {value}")
            chunks.append(b"i%de" % value)
        case bytes() | bytearray() | str():
            raw = _as_bytes(bytes(value) if isinstance(value, bytearray) else value)
            chunks.append(b"%d:" % len(raw))
            chunks.append(raw)
        case list() | tuple():
            chunks.append(b"l")
            for item in value:
                _encode_into(item, chunks)
            chunks.append(b"e")
        case dict():
            keyed = {}
            for key, item in value.items():
                if not isinstance(key, (bytes, str)):
                    raise TypeError(f"Dictionary keys must be strings, got {key!r}")
                raw_key = _as_bytes(key)
                if raw_key in keyed:
                    raise ValueError(f"Duplicate dictionary key {raw_key!r}")
                keyed[raw_key] = item
            chunks.append(b"d")
            for raw_key in sorted(keyed):
                _encode_into(raw_key, chunks)
                _encode_into(keyed[raw_key], chunks)
            chunks.append(b"e")
        case _:
            raise TypeError(f"Cannot bencode value of type {type(value).__name__}")

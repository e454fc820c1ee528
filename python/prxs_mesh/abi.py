"""Minimal ABI codec for the identity registry's read-only calls.

Only the fixed shapes needed to read an identity anchor are supported:
``f(uint256)`` and ``f(uint256,string)`` calldata, plus ``address``,
``bytes`` and ``string`` return values. This is not a general ABI library.

All hex arguments accept an optional ``0x`` prefix.
"""

from __future__ import annotations

import re

from prxs_mesh.exceptions import AbiError

WORD_HEX = 64
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def _selector(selector_hex: str) -> str:
    selector = _strip_0x(selector_hex)
    if len(selector) != 8 or not _HEX_RE.match(selector):
        raise AbiError(f"invalid selector: {selector_hex}")
    return selector.lower()


def encode_uint256(value: int) -> str:
    """Encode *value* as a big-endian, zero-padded 32-byte word (64 hex chars)."""
    if value < 0:
        raise AbiError("uint256 must be >= 0")
    hex_value = format(value, "x")
    if len(hex_value) > WORD_HEX:
        raise AbiError("uint256 overflow")
    return hex_value.rjust(WORD_HEX, "0")


def _encode_string_tail(text: str) -> str:
    data = text.encode("utf-8")
    data_hex = data.hex()
    pad = (WORD_HEX - len(data_hex) % WORD_HEX) % WORD_HEX
    return encode_uint256(len(data)) + data_hex + "0" * pad


def encode_call_uint(selector_hex: str, value: int) -> str:
    """Calldata for ``f(uint256)``."""
    return f"0x{_selector(selector_hex)}{encode_uint256(value)}"


def encode_call_uint_string(selector_hex: str, value: int, text: str) -> str:
    """Calldata for ``f(uint256,string)``.

    Layout: selector, the uint word, an offset word of ``0x40`` (the string
    starts right after the two head words), then length + padded UTF-8 bytes.
    """
    selector = _selector(selector_hex)
    head = encode_uint256(value) + encode_uint256(0x40)
    return f"0x{selector}{head}{_encode_string_tail(text)}"


def _word(hex_no_0x: str, index: int) -> int:
    start = index * WORD_HEX
    word = hex_no_0x[start:start + WORD_HEX]
    if len(word) != WORD_HEX:
        raise AbiError("return data too short")
    return int(word, 16)


def _return_hex(hex_data: str) -> str:
    hex_no_0x = _strip_0x(hex_data)
    if not _HEX_RE.match(hex_no_0x):
        raise AbiError("return data is not hex")
    if len(hex_no_0x) < WORD_HEX:
        raise AbiError("return data too short")
    return hex_no_0x


def decode_address(hex_data: str) -> str:
    """Take the low 20 bytes of the first return word as an address."""
    hex_no_0x = _return_hex(hex_data)
    return "0x" + hex_no_0x[24:WORD_HEX].lower()


def decode_dynamic_bytes(hex_data: str) -> bytes:
    """Decode an ABI ``bytes`` return value.

    Reads the offset word, the length word at that offset, then exactly that
    many bytes. Truncation at any stage raises :class:`AbiError`.
    """
    hex_no_0x = _return_hex(hex_data)
    offset = _word(hex_no_0x, 0)

    offset_hex = offset * 2
    if offset_hex + WORD_HEX > len(hex_no_0x):
        raise AbiError("return data too short (offset)")
    length_word = hex_no_0x[offset_hex:offset_hex + WORD_HEX]
    if len(length_word) != WORD_HEX:
        raise AbiError("return data too short (len)")
    length = int(length_word, 16)

    data_start = offset_hex + WORD_HEX
    data_end = data_start + length * 2
    if data_end > len(hex_no_0x):
        raise AbiError("return data too short (data)")
    return bytes.fromhex(hex_no_0x[data_start:data_end])


def decode_string(hex_data: str) -> str:
    """Decode an ABI ``string`` return value."""
    try:
        return decode_dynamic_bytes(hex_data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise AbiError(f"return data is not valid UTF-8: {exc}") from exc

"""Storage key derivation for document paths."""

from __future__ import annotations

__all__ = ["derive_key", "state_location"]

_PRIME_A = 31
_PRIME_B = 37
_MASK = 0x7FFFFFFF
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def derive_key(path: str) -> str:
    """Return a filesystem-safe token identifying ``path``.

    Two independent 31-bit rolling hashes over the UTF-16 code units of the
    path are base-36 encoded and followed by the base-36 length, so keys
    match the ones written by earlier releases of the store.
    """

    units = _utf16_units(path)
    hash_a = 0
    hash_b = 0
    for unit in units:
        hash_a = (hash_a * _PRIME_A + unit) & _MASK
        hash_b = (hash_b * _PRIME_B + unit) & _MASK
    return _base36(hash_a) + _base36(hash_b) + _base36(len(units))


def state_location(state_dir: str, path: str) -> str:
    """Return the record location for ``path`` inside ``state_dir``."""

    return f"{state_dir.rstrip('/')}/{derive_key(path)}.json"


def _utf16_units(text: str) -> list[int]:
    raw = text.encode("utf-16-le", errors="surrogatepass")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_DIGITS[remainder])
    return "".join(reversed(digits))

"""Structured node keys: a category character packed with an integer index.

A ``NodeSymbol`` stores an 8-bit category character in the high byte of a
64-bit key and a 56-bit index in the remaining bits, so that e.g. the fifth
agent keyframe ``a5`` and the fifth place ``p5`` have distinct ids.
"""

from __future__ import annotations

from typing import Iterable

_CHAR_BITS = 8
_INDEX_BITS = 64 - _CHAR_BITS
_INDEX_MASK = (1 << _INDEX_BITS) - 1


class NodeSymbol:
    """Category character + index encoded in a single integer key."""

    __slots__ = ("_value",)

    def __init__(self, key: str | int, index: int | None = None) -> None:
        """Create a symbol from a (character, index) pair or a raw key.

        Args:
            key: Category character, or an already-encoded integer key
            index: Index within the category (required with a character)

        Raises:
            ValueError: If the character or index is out of range
        """
        if isinstance(key, str):
            if index is None:
                raise ValueError("index is required when key is a character")
            if len(key) != 1 or ord(key) >= (1 << _CHAR_BITS):
                raise ValueError(f"Invalid category character: {key!r}")
            if index < 0 or index > _INDEX_MASK:
                raise ValueError(f"Index out of range: {index}")
            self._value = (ord(key) << _INDEX_BITS) | index
        else:
            if index is not None:
                raise ValueError("index must not be given with an encoded key")
            if key < 0 or key >= (1 << 64):
                raise ValueError(f"Key out of range: {key}")
            self._value = int(key)

    @property
    def category(self) -> str:
        """Category character (e.g. ``"a"`` for agent keyframes)."""
        return chr(self._value >> _INDEX_BITS)

    @property
    def category_id(self) -> int:
        """Index within the category."""
        return self._value & _INDEX_MASK

    @property
    def label(self) -> str:
        """Human-readable label, e.g. ``"a12"``.

        Keys without a printable category character are shown as integers.
        """
        if not self.category.isprintable() or self.category.isspace():
            return str(self._value)
        return f"{self.category}{self.category_id}"

    def __int__(self) -> int:
        return self._value

    def __index__(self) -> int:
        return self._value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, NodeSymbol):
            return self._value == other._value
        if isinstance(other, int):
            return self._value == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"NodeSymbol({self.label})"


def display_node_symbols(node_ids: Iterable[int]) -> str:
    """Format a collection of node ids as a sorted list of labels."""
    labels = [NodeSymbol(node_id).label for node_id in sorted(node_ids)]
    return "[" + ", ".join(labels) + "]"

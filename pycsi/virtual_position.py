"""BGZF virtual file positions."""

from __future__ import annotations

from dataclasses import dataclass as _dataclass

from ._shared import _check_u64

_UNCOMPRESSED_BITS = 16
_UNCOMPRESSED_MASK = (1 << _UNCOMPRESSED_BITS) - 1
_MAX_COMPRESSED = (1 << 48) - 1


@_dataclass(frozen=True, order=True)
class VirtualPosition:
    """
    A position in a block-compressed stream.

    The packed 64-bit value holds the compressed block address in its
    upper 48 bits and the offset inside the uncompressed block in its
    lower 16 bits, so comparing the packed values follows the physical
    order of the data in the stream.

    Parameters
    ----------
    value : int
        Packed unsigned 64-bit value.

    Examples
    --------
    >>> from pycsi import VirtualPosition
    >>> pos = VirtualPosition.from_parts(1024, 37)
    >>> pos.compressed_address(), pos.uncompressed_offset()
    (1024, 37)
    >>> VirtualPosition.decode(pos.encode()) == pos
    True
    """

    value: int = 0

    def __post_init__(self):
        object.__setattr__(self, "value", _check_u64(self.value, "virtual position"))

    @classmethod
    def decode(cls, value):
        """Build a position from its packed 64-bit representation."""
        return cls(value)

    @classmethod
    def from_parts(cls, compressed_address, uncompressed_offset):
        """Build a position from a block address and an intra-block offset."""
        if not 0 <= compressed_address <= _MAX_COMPRESSED:
            raise ValueError(
                f"compressed address must be in [0, 2**48), got {compressed_address}"
            )
        if not 0 <= uncompressed_offset <= _UNCOMPRESSED_MASK:
            raise ValueError(
                f"uncompressed offset must be in [0, 2**16), got {uncompressed_offset}"
            )
        return cls((int(compressed_address) << _UNCOMPRESSED_BITS) | int(uncompressed_offset))

    def encode(self):
        return self.value

    def compressed_address(self):
        return self.value >> _UNCOMPRESSED_BITS

    def uncompressed_offset(self):
        return self.value & _UNCOMPRESSED_MASK

    def __int__(self):
        return self.value

    def __index__(self):
        return self.value

    def __repr__(self):
        return f"VirtualPosition({self.compressed_address()}, {self.uncompressed_offset()})"


def _as_position(value):
    if isinstance(value, VirtualPosition):
        return value
    return VirtualPosition(value)

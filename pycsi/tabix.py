"""
Tabix-style auxiliary data and region strings.

The CSI format treats its auxiliary block as opaque. Indexes of
tab-delimited files (written by tabix/bcftools) store a tabix header
there, which carries the column layout and the reference names:

  format i32, col_seq i32, col_beg i32, col_end i32, meta i32, skip i32,
  l_nm i32, names (l_nm bytes of NUL-terminated strings)
"""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass as _dataclass
from dataclasses import field as _field

from ._shared import CsiFormatError

FORMAT_GENERIC = 0
FORMAT_SAM = 1
FORMAT_VCF = 2
FORMAT_ZERO_BASED = 0x10000

_HEADER = struct.Struct("<7i")

_REGION_RE = re.compile(r"^(?P<name>[^:]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$")


@_dataclass(frozen=True)
class TabixHeader:
    """
    Column layout and reference names of a tab-delimited data file.

    Attributes
    ----------
    format : int
        0 generic, 1 SAM, 2 VCF; ``0x10000`` marks zero-based coordinates.
    col_seq, col_beg, col_end : int
        1-based columns of the reference name, start and end (0 if absent).
    meta : int
        Character code of comment lines (e.g. ``ord('#')``).
    skip : int
        Number of leading lines to skip.
    names : tuple of str
        Reference names; position is the reference id.
    """

    format: int = FORMAT_GENERIC
    col_seq: int = 1
    col_beg: int = 2
    col_end: int = 3
    meta: int = ord("#")
    skip: int = 0
    names: tuple = _field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "names", tuple(self.names))

    @property
    def is_zero_based(self):
        return bool(self.format & FORMAT_ZERO_BASED)

    @classmethod
    def decode(cls, aux):
        """Parse a tabix header from an index's auxiliary bytes."""
        aux = bytes(aux)
        if len(aux) < _HEADER.size:
            raise CsiFormatError(
                f"Auxiliary data too short for a tabix header ({len(aux)} bytes)"
            )
        fmt, col_seq, col_beg, col_end, meta, skip, l_nm = _HEADER.unpack_from(aux)
        if l_nm < 0:
            raise CsiFormatError(f"Invalid tabix names length {l_nm}")
        raw = aux[_HEADER.size:_HEADER.size + l_nm]
        if len(raw) != l_nm:
            raise CsiFormatError(
                f"Truncated tabix names: expected {l_nm} bytes, got {len(raw)}"
            )
        if raw and not raw.endswith(b"\x00"):
            raise CsiFormatError("Tabix reference names are not NUL-terminated")
        try:
            names = tuple(n.decode("utf-8") for n in raw[:-1].split(b"\x00")) if raw else ()
        except UnicodeDecodeError as exc:
            raise CsiFormatError("Invalid UTF-8 reference name in tabix header") from exc
        return cls(fmt, col_seq, col_beg, col_end, meta, skip, names)

    def encode(self):
        """Serialize the header for use as an index's auxiliary bytes."""
        for name in self.names:
            if not name or "\x00" in name:
                raise ValueError(f"Invalid reference name {name!r}")
        raw = b"".join(n.encode("utf-8") + b"\x00" for n in self.names)
        return _HEADER.pack(
            self.format, self.col_seq, self.col_beg, self.col_end, self.meta, self.skip, len(raw)
        ) + raw


def csi_region_parse(region):
    """
    Parse a ``"name[:start[-end]]"`` region string.

    Coordinates in the string are 1-based and inclusive; commas are
    allowed as thousands separators.

    Returns
    -------
    tuple
        ``(name, start, end)`` as a 0-based half-open interval. ``end`` is
        None when the region runs to the end of the reference; a region
        with only a start covers that single position.

    Raises
    ------
    ValueError
        If the string cannot be parsed or the start is not positive.

    Examples
    --------
    >>> from pycsi import csi_region_parse
    >>> csi_region_parse("chr1:1,001-2,000")
    ('chr1', 1000, 2000)
    >>> csi_region_parse("chrX")
    ('chrX', 0, None)
    """
    if not isinstance(region, str):
        raise ValueError(f"region must be a string, got {region!r}")
    m = _REGION_RE.match(region.strip())
    if not m:
        raise ValueError(f"Invalid region string: {region}")
    name = m.group("name")
    start = m.group("start")
    end = m.group("end")
    if start is None:
        return name, 0, None
    start = int(start.replace(",", ""))
    if start < 1:
        raise ValueError(f"Region start must be positive (1-based): {region}")
    if end is None:
        return name, start - 1, start
    end = int(end.replace(",", ""))
    if end < start:
        raise ValueError(f"Region end precedes start: {region}")
    return name, start - 1, end

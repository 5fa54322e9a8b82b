"""
Index data model and the region query engine.

An :class:`Index` is built once (decoded by :func:`pycsi.csi_decode` or
produced by :class:`pycsi.IndexBuilder`) and is immutable afterwards:
all containers are tuples and all records are frozen dataclasses, so an
index can be shared between concurrent readers. Queries return new
:class:`~pycsi.Chunk` values.
"""

from __future__ import annotations

import numbers as _numbers
from dataclasses import dataclass as _dataclass
from dataclasses import field as _field
from typing import Optional as _Optional

import pandas as _pandas

from ._shared import CsiRangeError, _check_params, _check_u64
from .binning import (
    csi_bin_count,
    csi_bin_level,
    csi_bin_range,
    csi_reg2bins,
)
from .chunk import _as_chunk, csi_chunks_optimize
from .tabix import TabixHeader, csi_region_parse
from .virtual_position import VirtualPosition, _as_position


@_dataclass(frozen=True)
class Bin:
    """
    One node of the binning tree together with its chunks.

    Attributes
    ----------
    id : int
        Bin id (see :mod:`pycsi.binning`).
    loffset : VirtualPosition or None
        Virtual position of the first record overlapping the bin, used to
        prune chunks that end before any overlapping record. None is
        written as 0, so it reads back as ``VirtualPosition(0)``.
    chunks : tuple of Chunk
        Chunks in stored order; the order is not assumed to be sorted.
    """

    id: int
    loffset: _Optional[VirtualPosition] = None
    chunks: tuple = ()

    def __post_init__(self):
        if not 0 <= self.id <= 0xFFFFFFFF:
            raise ValueError(f"bin id must fit in an unsigned 32-bit integer, got {self.id}")
        if self.loffset is not None:
            object.__setattr__(self, "loffset", _as_position(self.loffset))
        object.__setattr__(self, "chunks", tuple(_as_chunk(c) for c in self.chunks))


@_dataclass(frozen=True)
class Metadata:
    """
    Per-reference statistics stored in the metadata pseudo-bin.

    Attributes
    ----------
    ref_beg, ref_end : VirtualPosition
        Span of the reference's records in the data file.
    n_mapped, n_unmapped : int
        Number of mapped and placed-but-unmapped records.
    """

    ref_beg: VirtualPosition
    ref_end: VirtualPosition
    n_mapped: int = 0
    n_unmapped: int = 0

    def __post_init__(self):
        object.__setattr__(self, "ref_beg", _as_position(self.ref_beg))
        object.__setattr__(self, "ref_end", _as_position(self.ref_end))
        object.__setattr__(self, "n_mapped", _check_u64(self.n_mapped, "n_mapped"))
        object.__setattr__(self, "n_unmapped", _check_u64(self.n_unmapped, "n_unmapped"))


@_dataclass(frozen=True)
class ReferenceSequence:
    """Bins of one reference sequence plus its optional metadata."""

    bins: tuple = ()
    metadata: _Optional[Metadata] = None

    def __post_init__(self):
        object.__setattr__(self, "bins", tuple(self.bins))

    def bins_for(self, bin_ids):
        """Return the stored bins whose id is in ``bin_ids``, in stored order."""
        wanted = set(bin_ids)
        return [b for b in self.bins if b.id in wanted]

    def min_offset(self, start, min_shift, depth, bins=None):
        """
        Return the smallest ``loffset`` of the candidate bins starting at or before ``start``.

        Parameters
        ----------
        start : int
            Query start (0-based).
        min_shift, depth : int
            Binning parameters of the owning index.
        bins : list of Bin, optional
            Candidate bins; defaults to the stored bins overlapping ``start``.

        Returns
        -------
        VirtualPosition
            ``VirtualPosition(0)`` when no candidate bin carries an offset.
        """
        if bins is None:
            bins = self.bins_for(csi_reg2bins(start, start + 1, min_shift, depth))
        n_bins = csi_bin_count(depth)
        offsets = [
            b.loffset for b in bins
            if b.loffset is not None
            and b.id < n_bins
            and csi_bin_range(b.id, min_shift, depth)[0] <= start
        ]
        if not offsets:
            return VirtualPosition(0)
        return min(offsets)

    def query(self, start, end, min_shift, depth):
        """Return the merged chunks that may hold records overlapping ``[start, end)``."""
        candidates = self.bins_for(csi_reg2bins(start, end, min_shift, depth))
        chunks = [chunk for b in candidates for chunk in b.chunks]
        min_offset = self.min_offset(start, min_shift, depth, bins=candidates)
        return csi_chunks_optimize(chunks, min_offset)


@_dataclass(frozen=True)
class Index:
    """
    A coordinate-sorted index.

    Attributes
    ----------
    min_shift : int
        log2 of the leaf bin size.
    depth : int
        Number of tree levels below the root.
    aux : bytes or None
        Opaque auxiliary data (e.g. a tabix-style header, see
        :class:`pycsi.TabixHeader`). Empty data is stored as None.
    references : tuple of ReferenceSequence
        One entry per reference sequence; the position is the reference id.
    n_no_coor : int or None
        Number of records without coordinates, when recorded.

    Examples
    --------
    >>> from pycsi import Bin, Index, ReferenceSequence
    >>> ref = ReferenceSequence(bins=[Bin(4681, 0, [(0, 100)])])
    >>> index = Index(min_shift=14, depth=5, references=[ref])
    >>> [c.as_tuple() for c in index.query(0, 0, 1000)]
    [(0, 100)]
    """

    min_shift: int = 14
    depth: int = 5
    aux: _Optional[bytes] = None
    references: tuple = _field(default_factory=tuple)
    n_no_coor: _Optional[int] = None

    def __post_init__(self):
        _check_params(self.min_shift, self.depth)
        object.__setattr__(self, "min_shift", int(self.min_shift))
        object.__setattr__(self, "depth", int(self.depth))
        if self.aux is not None:
            object.__setattr__(self, "aux", bytes(self.aux) or None)
        object.__setattr__(self, "references", tuple(self.references))
        if self.n_no_coor is not None:
            object.__setattr__(self, "n_no_coor", _check_u64(self.n_no_coor, "n_no_coor"))

    def __len__(self):
        return len(self.references)

    def reference(self, reference_id):
        """Return the :class:`ReferenceSequence` for ``reference_id``."""
        if isinstance(reference_id, bool) or not isinstance(reference_id, _numbers.Integral):
            raise CsiRangeError(f"reference id must be an integer, got {reference_id!r}")
        if not 0 <= reference_id < len(self.references):
            raise CsiRangeError(
                f"Reference id {reference_id} not in index "
                f"({len(self.references)} reference sequences)"
            )
        return self.references[int(reference_id)]

    def query(self, reference_id, start, end):
        """
        Return the chunks to scan for records overlapping ``[start, end)``.

        Parameters
        ----------
        reference_id : int
            Position of the reference sequence in the index.
        start, end : int
            0-based half-open query interval.

        Returns
        -------
        list of Chunk
            Disjoint chunks in ascending order. An empty list means that no
            record of this reference overlaps the interval.

        Raises
        ------
        CsiRangeError
            If ``reference_id`` is unknown or the interval exceeds the
            indexable range.
        """
        ref = self.reference(reference_id)
        return ref.query(start, end, self.min_shift, self.depth)

    def summary(self):
        """
        Per-reference record counts, in the spirit of ``samtools idxstats``.

        Returns
        -------
        DataFrame
            Columns ``ref_id``, ``n_bins``, ``n_mapped`` and ``n_unmapped``;
            counts are missing (``<NA>``) for references without metadata.
        """
        rows = {"ref_id": [], "n_bins": [], "n_mapped": [], "n_unmapped": []}
        for ref_id, ref in enumerate(self.references):
            rows["ref_id"].append(ref_id)
            rows["n_bins"].append(len(ref.bins))
            rows["n_mapped"].append(ref.metadata.n_mapped if ref.metadata else None)
            rows["n_unmapped"].append(ref.metadata.n_unmapped if ref.metadata else None)
        return _pandas.DataFrame({
            "ref_id": _pandas.array(rows["ref_id"], dtype="int64"),
            "n_bins": _pandas.array(rows["n_bins"], dtype="int64"),
            "n_mapped": _pandas.array(rows["n_mapped"], dtype="UInt64"),
            "n_unmapped": _pandas.array(rows["n_unmapped"], dtype="UInt64"),
        })


def csi_query(index, reference_id, start, end):
    """
    Return the chunks of ``index`` to scan for records overlapping a region.

    Parameters
    ----------
    index : Index
        Decoded or built index.
    reference_id : int
        Reference sequence id.
    start, end : int
        0-based half-open interval.

    Returns
    -------
    list of Chunk

    Raises
    ------
    CsiRangeError
        If the reference id is unknown or the interval is out of range.

    See Also
    --------
    csi_query_region : Query with a ``"name:start-end"`` region string.
    """
    return index.query(reference_id, start, end)


def csi_query_region(index, region, names=None):
    """
    Query ``index`` with a region string such as ``"chr1:1001-2000"``.

    Region coordinates are 1-based and inclusive (samtools style); a bare
    reference name selects the whole indexable range.

    Parameters
    ----------
    index : Index
    region : str
        ``"name"`` or ``"name:start-end"`` or ``"name:start"``.
    names : sequence of str, optional
        Reference names by id. Defaults to the names stored in a
        tabix-style auxiliary header.

    Returns
    -------
    list of Chunk

    Raises
    ------
    CsiRangeError
        If the name is unknown.
    ValueError
        If the region string cannot be parsed.
    """
    name, start, end = csi_region_parse(region)
    if names is None:
        if not index.aux:
            raise CsiRangeError(
                f"Cannot resolve reference '{name}': index carries no reference names"
            )
        names = TabixHeader.decode(index.aux).names
    names = list(names)
    if name not in names:
        raise CsiRangeError(f"Reference '{name}' not in index")
    if end is None:
        end = 1 << (index.min_shift + 3 * index.depth)
    return index.query(names.index(name), start, end)


def csi_index_to_df(index):
    """
    Tabulate every stored chunk of ``index``.

    Returns
    -------
    DataFrame
        One row per chunk with columns ``ref_id``, ``bin_id``, ``level``,
        ``loffset``, ``chunk_start`` and ``chunk_end``. ``level`` is -1
        for bin ids outside the binning tree.
    """
    n_bins = csi_bin_count(index.depth)
    cols = {k: [] for k in ("ref_id", "bin_id", "level", "loffset", "chunk_start", "chunk_end")}
    for ref_id, ref in enumerate(index.references):
        for b in ref.bins:
            level = csi_bin_level(b.id, index.depth) if b.id < n_bins else -1
            loffset = b.loffset.value if b.loffset is not None else 0
            for chunk in b.chunks:
                cols["ref_id"].append(ref_id)
                cols["bin_id"].append(b.id)
                cols["level"].append(level)
                cols["loffset"].append(loffset)
                cols["chunk_start"].append(chunk.start.value)
                cols["chunk_end"].append(chunk.end.value)
    return _pandas.DataFrame({
        "ref_id": _pandas.array(cols["ref_id"], dtype="int64"),
        "bin_id": _pandas.array(cols["bin_id"], dtype="uint32"),
        "level": _pandas.array(cols["level"], dtype="int64"),
        "loffset": _pandas.array(cols["loffset"], dtype="uint64"),
        "chunk_start": _pandas.array(cols["chunk_start"], dtype="uint64"),
        "chunk_end": _pandas.array(cols["chunk_end"], dtype="uint64"),
    })


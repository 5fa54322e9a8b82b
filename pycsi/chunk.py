"""Chunks of a block-compressed stream and chunk-list merging."""

from __future__ import annotations

from dataclasses import dataclass as _dataclass

import numpy as _numpy
import pandas as _pandas

from .virtual_position import (
    _UNCOMPRESSED_BITS,
    _UNCOMPRESSED_MASK,
    VirtualPosition,
    _as_position,
)


@_dataclass(frozen=True, order=True)
class Chunk:
    """
    A half-open range ``[start, end)`` of virtual positions.

    Chunks compare by ``(start, end)``. A chunk with ``start >= end`` is
    empty; such chunks are accepted because some writers emit them, and
    they are dropped when chunk lists are merged.

    Examples
    --------
    >>> from pycsi import Chunk
    >>> Chunk(0, 100)
    Chunk(start=VirtualPosition(0, 0), end=VirtualPosition(0, 100))
    """

    start: VirtualPosition
    end: VirtualPosition

    def __post_init__(self):
        object.__setattr__(self, "start", _as_position(self.start))
        object.__setattr__(self, "end", _as_position(self.end))

    @property
    def is_empty(self):
        return self.start >= self.end

    def as_tuple(self):
        """Return ``(start, end)`` as packed integers."""
        return self.start.value, self.end.value


def _as_chunk(chunk):
    if isinstance(chunk, Chunk):
        return chunk
    start, end = chunk
    return Chunk(start, end)


def csi_chunks_merge(chunks):
    """
    Merge a chunk list into the minimal ordered list of disjoint chunks.

    Chunks are sorted by start (ties by end) and scanned once; a chunk is
    folded into the current one when its start does not exceed the current
    end, so overlapping and touching chunks coalesce. Empty chunks are
    dropped.

    Parameters
    ----------
    chunks : iterable of Chunk or (start, end) tuples
        Chunks in any order.

    Returns
    -------
    list of Chunk
        Disjoint chunks in ascending order.

    See Also
    --------
    csi_chunks_optimize : Prune chunks below a minimum offset, then merge.

    Examples
    --------
    >>> from pycsi import csi_chunks_merge
    >>> [c.as_tuple() for c in csi_chunks_merge([(0, 100), (50, 150), (200, 300)])]
    [(0, 150), (200, 300)]
    """
    ordered = sorted(c for c in (_as_chunk(c) for c in chunks) if not c.is_empty)
    if not ordered:
        return []

    merged = []
    current_start, current_end = ordered[0].start, ordered[0].end
    for chunk in ordered[1:]:
        if chunk.start > current_end:
            merged.append(Chunk(current_start, current_end))
            current_start, current_end = chunk.start, chunk.end
        elif chunk.end > current_end:
            current_end = chunk.end
    merged.append(Chunk(current_start, current_end))
    return merged


def csi_chunks_optimize(chunks, min_offset):
    """
    Drop chunks that end before ``min_offset`` and merge the rest.

    Parameters
    ----------
    chunks : iterable of Chunk or (start, end) tuples
        Candidate chunks collected from the bins overlapping a query.
    min_offset : VirtualPosition or int
        Smallest virtual position a record overlapping the query can have.

    Returns
    -------
    list of Chunk
        Disjoint chunks in ascending order.
    """
    min_offset = _as_position(min_offset)
    kept = [c for c in (_as_chunk(c) for c in chunks) if c.end >= min_offset]
    return csi_chunks_merge(kept)


def csi_chunks_to_df(chunks):
    """
    Tabulate chunks as a DataFrame.

    Returns
    -------
    DataFrame
        Columns ``start``, ``end`` (packed virtual positions) and the
        block address / intra-block offset of each end.
    """
    pairs = [_as_chunk(c).as_tuple() for c in chunks]
    arr = _numpy.array(pairs, dtype=_numpy.uint64).reshape(-1, 2)
    starts = arr[:, 0]
    ends = arr[:, 1]
    shift = _numpy.uint64(_UNCOMPRESSED_BITS)
    mask = _numpy.uint64(_UNCOMPRESSED_MASK)
    return _pandas.DataFrame({
        "start": starts,
        "end": ends,
        "start_compressed": starts >> shift,
        "start_uncompressed": starts & mask,
        "end_compressed": ends >> shift,
        "end_uncompressed": ends & mask,
    })

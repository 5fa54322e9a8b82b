"""Incremental construction of a coordinate-sorted index from sorted records."""

import bisect
import logging as _logging
import warnings

import pandas as _pandas

from ._shared import _resolve_params
from .binning import csi_bin_range, csi_reg2bin
from .chunk import Chunk, _as_chunk
from .index import Bin, Index, Metadata, ReferenceSequence
from .tabix import TabixHeader
from .virtual_position import _UNCOMPRESSED_BITS, VirtualPosition

_logger = _logging.getLogger(__name__)

_RECORD_COLUMNS = ("ref_id", "start", "end", "chunk_start", "chunk_end")


class _ReferenceState:
    """Bins, linear offsets and counts accumulated for one reference."""
    __slots__ = ("bins", "windows", "ref_beg", "ref_end", "n_mapped", "n_unmapped")

    def __init__(self):
        self.bins = {}      # bin id -> list of [start, end] packed positions
        self.windows = {}   # leaf window -> packed position of first overlapping record
        self.ref_beg = None
        self.ref_end = None
        self.n_mapped = 0
        self.n_unmapped = 0


class IndexBuilder:
    """
    Build an :class:`~pycsi.Index` from records added in file order.

    Records must arrive sorted by reference id, then start; records
    without coordinates (``reference_id=None``) come last. Each record
    contributes the chunk of the data file it occupies.

    Parameters
    ----------
    min_shift, depth : int, optional
        Binning parameters; default to ``CONFIG['min_shift']`` and
        ``CONFIG['depth']``.
    aux : bytes or TabixHeader, optional
        Auxiliary data stored verbatim in the index.

    Examples
    --------
    >>> from pycsi import IndexBuilder, VirtualPosition
    >>> builder = IndexBuilder()
    >>> builder.add_record(0, 100, 200, (VirtualPosition.from_parts(0, 0), VirtualPosition.from_parts(0, 50)))
    >>> index = builder.build()
    >>> [c.as_tuple() for c in index.query(0, 150, 160)]
    [(0, 50)]
    """

    def __init__(self, min_shift=None, depth=None, aux=None):
        self.min_shift, self.depth = _resolve_params(min_shift, depth)
        if isinstance(aux, TabixHeader):
            aux = aux.encode()
        self.aux = bytes(aux) if aux else None
        self._refs = {}
        self._last = None
        self._seen_unplaced = False
        self._n_no_coor = 0
        self._n_records = 0

    def add_record(self, reference_id, start, end, chunk, is_mapped=True):
        """
        Add one record.

        Parameters
        ----------
        reference_id : int or None
            Reference sequence id; None for records without coordinates.
        start, end : int
            0-based half-open span of the record on its reference.
        chunk : Chunk or (start, end) pair of virtual positions
            Where the record is stored in the data file.
        is_mapped : bool, default True
            False for placed but unmapped records; they are indexed and
            counted in the reference's ``n_unmapped``.

        Raises
        ------
        ValueError
            If records are not coordinate-sorted.
        CsiRangeError
            If the record lies outside the indexable range.
        """
        self._n_records += 1
        if reference_id is None:
            self._seen_unplaced = True
            self._n_no_coor += 1
            return

        if self._seen_unplaced:
            raise ValueError(
                f"Record on reference {reference_id} follows records without coordinates"
            )
        if reference_id < 0:
            raise ValueError(f"reference_id must be non-negative, got {reference_id}")
        if self._last is not None and (reference_id, start) < self._last:
            raise ValueError(
                f"Records are not coordinate-sorted: ({reference_id}, {start}) "
                f"after {self._last}"
            )
        self._last = (reference_id, start)

        chunk = _as_chunk(chunk)
        bin_id = csi_reg2bin(start, end, self.min_shift, self.depth)
        state = self._refs.setdefault(reference_id, _ReferenceState())

        if is_mapped:
            state.n_mapped += 1
        else:
            state.n_unmapped += 1

        if chunk.is_empty:
            warnings.warn(
                f"Skipping empty chunk {chunk.as_tuple()} of record at "
                f"({reference_id}, {start})",
                stacklevel=2,
            )
            return

        chunk_start, chunk_end = chunk.as_tuple()
        chunks = state.bins.setdefault(bin_id, [])
        if chunks and chunks[-1][1] >> _UNCOMPRESSED_BITS == chunk_start >> _UNCOMPRESSED_BITS:
            chunks[-1][1] = max(chunks[-1][1], chunk_end)
        else:
            chunks.append([chunk_start, chunk_end])

        last_pos = max(end, start + 1) - 1
        for window in range(start >> self.min_shift, (last_pos >> self.min_shift) + 1):
            state.windows.setdefault(window, chunk_start)

        if state.ref_beg is None:
            state.ref_beg = chunk_start
        state.ref_end = chunk_end if state.ref_end is None else max(state.ref_end, chunk_end)

    def _bin_loffset(self, bin_id, chunks, window_keys, windows):
        offset = chunks[0][0]
        bin_start, bin_end = csi_bin_range(bin_id, self.min_shift, self.depth)
        first = bin_start >> self.min_shift
        last = (bin_end - 1) >> self.min_shift
        i = bisect.bisect_left(window_keys, first)
        if i < len(window_keys) and window_keys[i] <= last:
            offset = min(offset, windows[window_keys[i]])
        return VirtualPosition(offset)

    def _build_reference(self, state):
        if state is None:
            return ReferenceSequence()
        window_keys = sorted(state.windows)
        bins = []
        for bin_id in sorted(state.bins):
            chunks = state.bins[bin_id]
            loffset = self._bin_loffset(bin_id, chunks, window_keys, state.windows)
            bins.append(Bin(bin_id, loffset, [Chunk(s, e) for s, e in chunks]))
        metadata = None
        if state.ref_beg is not None:
            metadata = Metadata(state.ref_beg, state.ref_end, state.n_mapped, state.n_unmapped)
        return ReferenceSequence(bins, metadata)

    def build(self, n_references=None):
        """
        Return the finished index.

        Parameters
        ----------
        n_references : int, optional
            Total number of reference sequences of the data file. References
            without records get empty entries. Defaults to one past the
            largest reference id seen.

        Returns
        -------
        Index
        """
        needed = max(self._refs) + 1 if self._refs else 0
        if n_references is None:
            n_references = needed
        elif n_references < needed:
            raise ValueError(
                f"n_references={n_references} but records reference id {needed - 1}"
            )

        references = [self._build_reference(self._refs.get(i)) for i in range(n_references)]
        _logger.info(
            "built CSI index: %d records, %d references, %d bins, %d without coordinates",
            self._n_records, n_references, sum(len(r.bins) for r in references), self._n_no_coor,
        )
        return Index(self.min_shift, self.depth, self.aux, references, self._n_no_coor)


def _iter_df_records(df):
    missing = [c for c in _RECORD_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"records DataFrame is missing columns: {', '.join(missing)}")
    mapped = df["mapped"] if "mapped" in df.columns else None
    for i, row in enumerate(df.loc[:, list(_RECORD_COLUMNS)].itertuples(index=False, name=None)):
        ref_id, start, end, chunk_start, chunk_end = row
        ref_id = None if _pandas.isna(ref_id) or ref_id < 0 else int(ref_id)
        is_mapped = True if mapped is None else bool(mapped.iloc[i])
        yield ref_id, int(start), int(end), int(chunk_start), int(chunk_end), is_mapped


def csi_build(records, n_references=None, min_shift=None, depth=None, aux=None):
    """
    Build an index from coordinate-sorted records.

    Parameters
    ----------
    records : DataFrame or iterable of tuples
        Either a DataFrame with columns ``ref_id``, ``start``, ``end``,
        ``chunk_start``, ``chunk_end`` (and optionally a boolean
        ``mapped``), or tuples ``(ref_id, start, end, chunk_start,
        chunk_end[, mapped])``. ``ref_id`` of None, NaN or a negative
        value marks a record without coordinates. Chunk ends are packed
        virtual positions or :class:`VirtualPosition` objects.
    n_references : int, optional
        Total number of reference sequences.
    min_shift, depth : int, optional
        Binning parameters; default to ``CONFIG``.
    aux : bytes or TabixHeader, optional
        Auxiliary data.

    Returns
    -------
    Index

    Raises
    ------
    ValueError
        If records are unsorted or malformed.
    CsiRangeError
        If a record lies outside the indexable range.

    See Also
    --------
    IndexBuilder : Add records one at a time.
    csi_query : Query the built index.
    """
    builder = IndexBuilder(min_shift=min_shift, depth=depth, aux=aux)
    if isinstance(records, _pandas.DataFrame):
        records = _iter_df_records(records)
    for record in records:
        if len(record) not in (5, 6):
            raise ValueError(f"Invalid record {record!r}: expected 5 or 6 fields")
        ref_id, start, end, chunk_start, chunk_end = record[:5]
        is_mapped = bool(record[5]) if len(record) == 6 else True
        if ref_id is not None and ref_id < 0:
            ref_id = None
        builder.add_record(ref_id, start, end, (chunk_start, chunk_end), is_mapped=is_mapped)
    return builder.build(n_references)

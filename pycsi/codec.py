"""
Binary codec for coordinate-sorted index files.

Layout (all integers little-endian)::

    magic      4 bytes  b"CSI\\x01"
    min_shift  i32
    depth      i32
    l_aux      i32
    aux        l_aux bytes
    n_ref      i32
    n_ref x:
      n_bin    i32
      n_bin x:
        bin      u32
        loffset  u64
        n_chunk  i32
        n_chunk x: chunk_start u64, chunk_end u64
    n_no_coor  u64  (optional)

Parsing is done by a single generator, :func:`_parse_index`, that yields
one request per field and is resumed with the bytes for that field. The
synchronous and asyncio readers only move bytes between a source and
that generator, so they cannot diverge. Counted payloads are announced
with a reservation request first, which lets sources that know their
size reject impossible counts before anything is allocated.
"""

import gzip
import inspect
import logging as _logging
import os
import struct
import warnings
import zlib
from collections import namedtuple
from pathlib import Path

import numpy as _numpy

from ._shared import (
    CONFIG,
    MAGIC,
    CsiFormatError,
    CsiIOError,
    _chunk_slices,
    _debug_enabled,
)
from .binning import csi_bin_count, csi_metadata_bin_id
from .chunk import Chunk
from .index import Bin, Index, Metadata, ReferenceSequence

_logger = _logging.getLogger(__name__)

_I32 = struct.Struct("<i")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_METADATA = struct.Struct("<4Q")

_I32_MAX = 0x7FFFFFFF
_CHUNK_SIZE = 16
# bin + loffset + n_chunk
_MIN_BIN_SIZE = 16
_METADATA_CHUNK_COUNT = 2
_GZIP_MAGIC = b"\x1f\x8b"
# Largest single read issued to a stream
_READ_PIECE = 1 << 16

# A field read: `size` bytes for `field`; `optional` fields may hit a clean EOF,
# inexact reads hand back whatever is available
_Read = namedtuple("_Read", ["field", "size", "optional", "exact"], defaults=[False, True])
# A promise that at least `size` more bytes are needed for `field`
_Reserve = namedtuple("_Reserve", ["field", "size"])


# ---------------------------------------------------------------------------
# Parse state machine
# ---------------------------------------------------------------------------

def _read_count(raw, field):
    (n,) = _I32.unpack(raw)
    if n < 0:
        raise CsiFormatError(f"Invalid {field} {n}")
    return n


def _decode_chunks(raw):
    pairs = _numpy.frombuffer(raw, dtype="<u8").reshape(-1, 2)
    return [Chunk(int(s), int(e)) for s, e in pairs.tolist()]


def _parse_index(batch_chunks=None):
    """Generator that parses an index; yields `_Read`/`_Reserve`, returns an `Index`."""
    if batch_chunks is None:
        batch_chunks = CONFIG['read_batch_chunks']

    magic = yield _Read("magic", len(MAGIC), exact=False)
    if magic != MAGIC:
        raise CsiFormatError(f"Invalid CSI magic {magic!r}")

    (min_shift,) = _I32.unpack((yield _Read("min_shift", 4)))
    (depth,) = _I32.unpack((yield _Read("depth", 4)))
    if min_shift <= 0 or depth < 0 or min_shift + 3 * depth > 63:
        raise CsiFormatError(f"Invalid binning parameters min_shift={min_shift}, depth={depth}")
    bin_count = csi_bin_count(depth)
    metadata_id = csi_metadata_bin_id(depth)

    l_aux = _read_count((yield _Read("l_aux", 4)), "l_aux")
    aux = None
    if l_aux > 0:
        yield _Reserve("aux", l_aux)
        aux = yield _Read("aux", l_aux)

    n_ref = _read_count((yield _Read("n_ref", 4)), "n_ref")
    yield _Reserve("references", 4 * n_ref)

    references = []
    for ref_id in range(n_ref):
        n_bin = _read_count((yield _Read(f"n_bin[{ref_id}]", 4)), f"n_bin for reference {ref_id}")
        yield _Reserve(f"bins[{ref_id}]", _MIN_BIN_SIZE * n_bin)

        bins = []
        metadata = None
        for _ in range(n_bin):
            (bin_id,) = _U32.unpack((yield _Read("bin", 4)))
            (loffset,) = _U64.unpack((yield _Read("loffset", 8)))
            n_chunk = _read_count((yield _Read("n_chunk", 4)), f"n_chunk for bin {bin_id}")

            if bin_id == metadata_id:
                if n_chunk != _METADATA_CHUNK_COUNT:
                    raise CsiFormatError(
                        f"Metadata bin of reference {ref_id} has {n_chunk} chunks, "
                        f"expected {_METADATA_CHUNK_COUNT}"
                    )
                ref_beg, ref_end, n_mapped, n_unmapped = _METADATA.unpack(
                    (yield _Read("metadata", _METADATA.size))
                )
                metadata = Metadata(ref_beg, ref_end, n_mapped, n_unmapped)
                continue

            yield _Reserve("chunks", _CHUNK_SIZE * n_chunk)
            chunks = []
            for lo, hi in _chunk_slices(n_chunk, batch_chunks):
                if hi > lo:
                    chunks.extend(_decode_chunks((yield _Read("chunks", _CHUNK_SIZE * (hi - lo)))))
            bins.append(Bin(bin_id, loffset, chunks))

        if _debug_enabled():
            outside = sum(1 for b in bins if b.id >= bin_count)
            if outside:
                _logger.debug("reference %d: %d bin ids outside the binning tree", ref_id, outside)
        references.append(ReferenceSequence(bins, metadata))

    n_no_coor = None
    raw = yield _Read("n_no_coor", 8, optional=True)
    if raw:
        (n_no_coor,) = _U64.unpack(raw)

    return Index(min_shift, depth, aux, references, n_no_coor)


def _check_reserve(request, remaining):
    if remaining is not None and request.size > remaining:
        raise CsiFormatError(
            f"Declared {request.field} need {request.size} bytes but only {remaining} remain"
        )


def _check_read(request, data):
    if not request.exact:
        return data
    if request.optional and not data:
        return None
    if len(data) != request.size:
        raise CsiIOError(
            request.field,
            f"unexpected end of data: expected {request.size} bytes, got {len(data)}",
        )
    return data


# ---------------------------------------------------------------------------
# Byte sources
# ---------------------------------------------------------------------------

class _BufferSource:
    def __init__(self, data):
        self._view = memoryview(data)
        self._pos = 0

    @property
    def remaining(self):
        return len(self._view) - self._pos

    def fulfil(self, request):
        if isinstance(request, _Reserve):
            _check_reserve(request, self.remaining)
            return None
        data = bytes(self._view[self._pos:self._pos + request.size])
        self._pos += len(data)
        return _check_read(request, data)


class _StreamSource:
    def __init__(self, fileobj):
        self._fh = fileobj
        self._end = None
        if getattr(fileobj, "seekable", lambda: False)():
            pos = fileobj.tell()
            self._end = fileobj.seek(0, os.SEEK_END)
            fileobj.seek(pos)

    @property
    def remaining(self):
        if self._end is None:
            return None
        return self._end - self._fh.tell()

    def fulfil(self, request):
        if isinstance(request, _Reserve):
            _check_reserve(request, self.remaining)
            return None
        parts = []
        need = request.size
        try:
            while need > 0:
                part = self._fh.read(min(need, _READ_PIECE))
                if not part:
                    break
                parts.append(part)
                need -= len(part)
        except OSError as exc:
            raise CsiIOError(request.field, f"read failed ({exc})") from exc
        return _check_read(request, b"".join(parts))


class _AsyncStreamSource:
    def __init__(self, reader):
        self._reader = reader

    async def fulfil(self, request):
        if isinstance(request, _Reserve):
            return None
        parts = []
        need = request.size
        try:
            while need > 0:
                part = self._reader.read(min(need, _READ_PIECE))
                if inspect.isawaitable(part):
                    part = await part
                if not part:
                    break
                parts.append(part)
                need -= len(part)
        except OSError as exc:
            raise CsiIOError(request.field, f"read failed ({exc})") from exc
        return _check_read(request, b"".join(parts))


def _drive(parser, source):
    try:
        request = next(parser)
        while True:
            request = parser.send(source.fulfil(request))
    except StopIteration as stop:
        return stop.value


async def _drive_async(parser, source):
    try:
        request = next(parser)
        while True:
            request = parser.send(await source.fulfil(request))
    except StopIteration as stop:
        return stop.value


def _log_decoded(index, origin):
    _logger.debug(
        "decoded CSI index from %s: min_shift=%d depth=%d references=%d n_no_coor=%s",
        origin, index.min_shift, index.depth, len(index.references), index.n_no_coor,
    )


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------

def csi_decode(data):
    """
    Decode an uncompressed CSI index.

    Parameters
    ----------
    data : bytes-like
        Raw index bytes starting with ``b"CSI\\x01"``.

    Returns
    -------
    Index

    Raises
    ------
    CsiFormatError
        On a bad magic, negative counts, counts that need more bytes than
        remain, or an invalid metadata bin.
    CsiIOError
        If the data ends in the middle of a field.

    See Also
    --------
    csi_encode : The inverse operation.
    csi_read : Read a (gzip-compressed) index file.
    """
    source = _BufferSource(data)
    index = _drive(_parse_index(), source)
    if source.remaining:
        warnings.warn(
            f"Ignoring {source.remaining} trailing bytes after the CSI index",
            stacklevel=2,
        )
    _log_decoded(index, "buffer")
    return index


def csi_read_stream(fileobj):
    """Decode an uncompressed CSI index from a binary file object."""
    index = _drive(_parse_index(), _StreamSource(fileobj))
    _log_decoded(index, "stream")
    return index


async def csi_read_async(reader):
    """
    Decode an uncompressed CSI index from an asynchronous byte source.

    Parameters
    ----------
    reader : object
        Anything with a ``read(n)`` coroutine method returning at most
        ``n`` bytes, e.g. :class:`asyncio.StreamReader`.

    Returns
    -------
    Index
    """
    index = await _drive_async(_parse_index(), _AsyncStreamSource(reader))
    _log_decoded(index, "async stream")
    return index


def csi_read(path):
    """
    Read an index file.

    ``.csi`` files are normally BGZF (gzip-compatible) compressed; files
    holding the raw index are accepted too.

    Parameters
    ----------
    path : str or Path

    Returns
    -------
    Index
    """
    path = Path(path)
    with open(path, "rb") as fh:
        data = fh.read()
    if data[:2] == _GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise CsiIOError(str(path), f"failed to decompress ({exc})") from exc
    return csi_decode(data)


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

def _pack_count(n, field):
    if n > _I32_MAX:
        raise ValueError(f"Too many {field} to encode: {n}")
    return _I32.pack(n)


def _encode_parts(index):
    """Yield the serialized index piece by piece (header, then one piece per bin)."""
    metadata_id = csi_metadata_bin_id(index.depth)
    aux = index.aux or b""

    yield MAGIC + _I32.pack(index.min_shift) + _I32.pack(index.depth) + _pack_count(len(aux), "aux bytes")
    if aux:
        yield aux
    yield _pack_count(len(index.references), "reference sequences")

    for ref in index.references:
        n_bin = len(ref.bins) + (1 if ref.metadata is not None else 0)
        yield _pack_count(n_bin, "bins")
        for b in ref.bins:
            if b.id == metadata_id:
                raise ValueError(
                    f"Bin id {b.id} is reserved for reference metadata at depth {index.depth}"
                )
            loffset = b.loffset.value if b.loffset is not None else 0
            pairs = _numpy.array([c.as_tuple() for c in b.chunks], dtype="<u8").reshape(-1, 2)
            yield (
                _U32.pack(b.id) + _U64.pack(loffset)
                + _pack_count(len(b.chunks), "chunks") + pairs.tobytes()
            )
        if ref.metadata is not None:
            m = ref.metadata
            yield (
                _U32.pack(metadata_id) + _U64.pack(0) + _I32.pack(_METADATA_CHUNK_COUNT)
                + _METADATA.pack(m.ref_beg.value, m.ref_end.value, m.n_mapped, m.n_unmapped)
            )

    if index.n_no_coor is not None:
        yield _U64.pack(index.n_no_coor)


def csi_encode(index):
    """
    Serialize ``index`` to uncompressed CSI bytes.

    The output depends only on the index contents, so equal indexes
    always encode to identical bytes.

    Returns
    -------
    bytes

    See Also
    --------
    csi_decode : The inverse operation.
    csi_write : Write a gzip-compressed index file.
    """
    return b"".join(_encode_parts(index))


def csi_write_stream(fileobj, index):
    """Write ``index`` uncompressed to a binary file object; return bytes written."""
    total = 0
    for part in _encode_parts(index):
        fileobj.write(part)
        total += len(part)
    return total


async def csi_write_async(writer, index):
    """
    Write ``index`` uncompressed to an asynchronous byte sink.

    Parameters
    ----------
    writer : object
        An :class:`asyncio.StreamWriter`-like object: ``write(data)``
        (plain or coroutine) and, optionally, a ``drain()`` coroutine that
        is awaited after every piece.

    Returns
    -------
    int
        Number of bytes written.
    """
    total = 0
    drain = getattr(writer, "drain", None)
    for part in _encode_parts(index):
        result = writer.write(part)
        if inspect.isawaitable(result):
            await result
        if drain is not None:
            await drain()
        total += len(part)
    return total


def csi_write(index, path, compresslevel=None):
    """
    Write ``index`` to a gzip-compressed ``.csi`` file.

    The gzip header carries no timestamp or file name, so the same index
    always produces the same file. The file is written to a temporary
    name and moved into place once complete.

    Parameters
    ----------
    index : Index
    path : str or Path
    compresslevel : int, optional
        gzip level; defaults to ``CONFIG['compresslevel']``.
    """
    if compresslevel is None:
        compresslevel = CONFIG['compresslevel']
    path = Path(path)
    payload = gzip.compress(csi_encode(index), compresslevel=compresslevel, mtime=0)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    _logger.debug("wrote CSI index to %s (%d bytes)", path, len(payload))

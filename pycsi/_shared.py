"""
Shared defaults, error types and small helpers for pycsi modules.

Thread-safety note:
`CONFIG` is process-global and only consulted when an index is being
built or written without explicit parameters. A constructed `Index` never
reads it again, so decoded or built indexes can be queried from several
threads without locking.
"""

import numpy as _numpy

# Configuration dictionary: defaults for building and writing indexes
CONFIG = {
    'min_shift': 14,            # Leaf bin size 2**14 (16 kbp), as in htslib
    'depth': 5,                 # Tree levels below the root
    'compresslevel': 6,         # gzip level used by csi_write()
    'read_batch_chunks': 4096,  # Max chunk pairs requested per read on streams
    'debug': False,             # Extra parse/build diagnostics on the logger
}

MAGIC = b"CSI\x01"

_U64_MAX = 0xFFFFFFFFFFFFFFFF


class CsiError(Exception):
    """Base class for all pycsi errors."""


class CsiFormatError(CsiError, ValueError):
    """The index bytes are malformed (bad magic, inconsistent counts, truncated structure)."""


class CsiIOError(CsiError, OSError):
    """A read or write of an index field could not be completed."""

    def __init__(self, field, message):
        self.field = field
        super().__init__(f"{field}: {message}")


class CsiRangeError(CsiError, ValueError):
    """Query coordinates or reference are outside what the index describes."""


def _debug_enabled():
    return bool(CONFIG.get('debug', False))


def _resolve_params(min_shift=None, depth=None):
    """Fill binning parameters from CONFIG and validate them."""
    if min_shift is None:
        min_shift = CONFIG['min_shift']
    if depth is None:
        depth = CONFIG['depth']
    _check_params(min_shift, depth)
    return int(min_shift), int(depth)


def _check_params(min_shift, depth):
    if isinstance(min_shift, bool) or not isinstance(min_shift, (int, _numpy.integer)):
        raise ValueError(f"min_shift must be an integer, got {min_shift!r}")
    if isinstance(depth, bool) or not isinstance(depth, (int, _numpy.integer)):
        raise ValueError(f"depth must be an integer, got {depth!r}")
    if min_shift <= 0:
        raise ValueError(f"min_shift must be positive, got {min_shift}")
    if depth < 0:
        raise ValueError(f"depth must be non-negative, got {depth}")
    if min_shift + 3 * depth > 63:
        raise ValueError(
            f"min_shift + 3 * depth must not exceed 63 (min_shift={min_shift}, depth={depth})"
        )


def _check_u64(value, name):
    if isinstance(value, bool) or not isinstance(value, (int, _numpy.integer)):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > _U64_MAX:
        raise ValueError(f"{name} must fit in an unsigned 64-bit integer, got {value}")
    return int(value)


def _chunk_slices(n, chunk_size):
    if chunk_size is None or chunk_size <= 0 or chunk_size >= n:
        return [(0, n)]
    return [(i, min(i + chunk_size, n)) for i in range(0, n, chunk_size)]

"""
pycsi - Coordinate-Sorted Index (CSI) reader and writer
"""

__version__ = '0.1.0'

from . import _shared
from ._shared import (
    CONFIG,
    MAGIC,
    CsiError,
    CsiFormatError,
    CsiIOError,
    CsiRangeError,
)
from .binning import (
    csi_bin_count,
    csi_bin_level,
    csi_bin_range,
    csi_level_offset,
    csi_max_position,
    csi_metadata_bin_id,
    csi_parent_bin,
    csi_reg2bin,
    csi_reg2bins,
)
from .builder import IndexBuilder, csi_build
from .chunk import Chunk, csi_chunks_merge, csi_chunks_optimize, csi_chunks_to_df
from .codec import (
    csi_decode,
    csi_encode,
    csi_read,
    csi_read_async,
    csi_read_stream,
    csi_write,
    csi_write_async,
    csi_write_stream,
)
from .index import (
    Bin,
    Index,
    Metadata,
    ReferenceSequence,
    csi_index_to_df,
    csi_query,
    csi_query_region,
)
from .tabix import TabixHeader, csi_region_parse
from .virtual_position import VirtualPosition

__all__ = [
    # Configuration
    'CONFIG',
    'MAGIC',

    # Errors
    'CsiError',
    'CsiFormatError',
    'CsiIOError',
    'CsiRangeError',

    # Data model
    'VirtualPosition',
    'Chunk',
    'Bin',
    'Metadata',
    'ReferenceSequence',
    'Index',
    'TabixHeader',

    # Binning scheme
    'csi_max_position',
    'csi_level_offset',
    'csi_bin_count',
    'csi_metadata_bin_id',
    'csi_reg2bin',
    'csi_reg2bins',
    'csi_bin_level',
    'csi_bin_range',
    'csi_parent_bin',

    # Chunks
    'csi_chunks_merge',
    'csi_chunks_optimize',
    'csi_chunks_to_df',

    # Queries
    'csi_query',
    'csi_query_region',
    'csi_region_parse',
    'csi_index_to_df',

    # Construction
    'IndexBuilder',
    'csi_build',

    # Codec
    'csi_decode',
    'csi_encode',
    'csi_read',
    'csi_read_stream',
    'csi_read_async',
    'csi_write',
    'csi_write_stream',
    'csi_write_async',
]

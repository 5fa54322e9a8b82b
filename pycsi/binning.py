"""
Binning scheme of the coordinate-sorted index.

The coordinate space ``[0, 2**(min_shift + 3*depth))`` is partitioned by
an 8-ary tree. Level 0 holds the leaves (bins of ``2**min_shift``
positions) and level ``depth`` is the root; a bin at level ``l`` spans
``2**(min_shift + 3*l)`` positions. Bins are numbered level by level
starting at the root, so level ``l`` occupies the ids starting at
``(8**(depth - l) - 1) // 7``.

All functions take 0-based half-open coordinates.
"""

from ._shared import CsiRangeError, _check_params


def csi_max_position(min_shift, depth):
    """Return the size of the coordinate space addressable by the tree."""
    _check_params(min_shift, depth)
    return 1 << (min_shift + 3 * depth)


def csi_level_offset(level, depth):
    """Return the first bin id of ``level`` (0 = leaves, ``depth`` = root)."""
    if not 0 <= level <= depth:
        raise ValueError(f"level must be in [0, {depth}], got {level}")
    return ((1 << (3 * (depth - level))) - 1) // 7


def csi_bin_count(depth):
    """Return the number of bins in a tree of the given depth."""
    if depth < 0:
        raise ValueError(f"depth must be non-negative, got {depth}")
    return ((1 << (3 * (depth + 1))) - 1) // 7


def csi_metadata_bin_id(depth):
    """Return the id of the pseudo-bin that carries per-reference metadata."""
    return csi_bin_count(depth) + 1


def _check_interval(start, end, min_shift, depth):
    max_pos = csi_max_position(min_shift, depth)
    if start < 0:
        raise CsiRangeError(f"start must be non-negative, got {start}")
    if start >= max_pos:
        raise CsiRangeError(
            f"start {start} is beyond the indexable range [0, {max_pos}) "
            f"(min_shift={min_shift}, depth={depth})"
        )
    if end > max_pos:
        raise CsiRangeError(
            f"end {end} is beyond the indexable range [0, {max_pos}] "
            f"(min_shift={min_shift}, depth={depth})"
        )
    # An empty or inverted interval stands for the single position at start
    if end <= start:
        end = start + 1
    return int(start), int(end) - 1


def csi_reg2bin(start, end, min_shift, depth):
    """
    Return the smallest bin that fully contains ``[start, end)``.

    Parameters
    ----------
    start, end : int
        0-based half-open interval. ``end <= start`` is treated as the
        single position ``start``.
    min_shift : int
        log2 of the leaf bin size.
    depth : int
        Number of tree levels below the root.

    Returns
    -------
    int
        Bin id.

    Raises
    ------
    CsiRangeError
        If the interval lies outside ``[0, 2**(min_shift + 3*depth))``.

    See Also
    --------
    csi_reg2bins : All bins overlapping an interval.

    Examples
    --------
    >>> from pycsi import csi_reg2bin
    >>> csi_reg2bin(0, 1, 14, 5)
    4681
    """
    beg, last = _check_interval(start, end, min_shift, depth)
    shift = min_shift
    for level in range(depth):
        if beg >> shift == last >> shift:
            return csi_level_offset(level, depth) + (beg >> shift)
        shift += 3
    return 0


def csi_reg2bins(start, end, min_shift, depth):
    """
    Return every bin id whose range intersects ``[start, end)``.

    The result covers each level from the root down to the leaves and is
    sorted ascending; it always contains ``csi_reg2bin(start, end, ...)``.

    Parameters
    ----------
    start, end : int
        0-based half-open interval. ``end <= start`` is treated as the
        single position ``start``.
    min_shift, depth : int
        Binning parameters of the index.

    Returns
    -------
    list of int

    Raises
    ------
    CsiRangeError
        If the interval lies outside the indexable range.

    Examples
    --------
    >>> from pycsi import csi_reg2bins
    >>> csi_reg2bins(0, 1, 14, 2)
    [0, 1, 9]
    """
    beg, last = _check_interval(start, end, min_shift, depth)
    bins = []
    shift = min_shift + 3 * depth
    for level in range(depth, -1, -1):
        offset = csi_level_offset(level, depth)
        bins.extend(range(offset + (beg >> shift), offset + (last >> shift) + 1))
        shift -= 3
    return bins


def csi_bin_level(bin_id, depth):
    """Return the tree level of ``bin_id`` (0 = leaves)."""
    if not 0 <= bin_id < csi_bin_count(depth):
        raise ValueError(f"Invalid bin id {bin_id} for depth {depth}")
    for level in range(depth + 1):
        if bin_id >= csi_level_offset(level, depth):
            return level
    return depth


def csi_bin_range(bin_id, min_shift, depth):
    """
    Return the coordinate span ``(start, end)`` covered by ``bin_id``.

    Examples
    --------
    >>> from pycsi import csi_bin_range
    >>> csi_bin_range(4681, 14, 5)
    (0, 16384)
    """
    _check_params(min_shift, depth)
    level = csi_bin_level(bin_id, depth)
    shift = min_shift + 3 * level
    index = bin_id - csi_level_offset(level, depth)
    return index << shift, (index + 1) << shift


def csi_parent_bin(bin_id, depth):
    """Return the id of the bin one level up, or None for the root."""
    level = csi_bin_level(bin_id, depth)
    if level == depth:
        return None
    index = bin_id - csi_level_offset(level, depth)
    return csi_level_offset(level + 1, depth) + (index >> 3)

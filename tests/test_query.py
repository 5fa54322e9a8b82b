import random

import numpy as np
import pytest

import pycsi as pc


def _tuples(chunks):
    return [c.as_tuple() for c in chunks]


def _covered(record_chunk, chunks):
    start, end = int(record_chunk[0]), int(record_chunk[1])
    return any(c.start.value <= start and end <= c.end.value for c in chunks)


# ---------------------------------------------------------------------------
# hand-built index
# ---------------------------------------------------------------------------
class TestQuerySmallIndex:

    def test_collects_leaf_and_ancestors(self, small_index):
        chunks = pc.csi_query(small_index, 0, 0, 1000)
        assert _tuples(chunks) == [(10, 20), (50, 90), (100, 200), (300, 400)]

    def test_second_leaf(self, small_index):
        chunks = small_index.query(0, 20000, 20001)
        assert _tuples(chunks) == [(10, 20), (50, 90), (500, 600)]

    def test_reference_without_bins_is_empty(self, small_index):
        assert pc.csi_query(small_index, 1, 0, 1000) == []

    @pytest.mark.parametrize("ref_id", [2, -1, 100])
    def test_unknown_reference(self, small_index, ref_id):
        with pytest.raises(pc.CsiRangeError):
            pc.csi_query(small_index, ref_id, 0, 1000)

    def test_non_integer_reference(self, small_index):
        with pytest.raises(pc.CsiRangeError):
            pc.csi_query(small_index, "0", 0, 1000)

    def test_numpy_reference_id(self, small_index):
        assert _tuples(pc.csi_query(small_index, np.int64(0), 0, 10)) == _tuples(pc.csi_query(small_index, 0, 0, 10))

    def test_out_of_range_interval(self, small_index):
        with pytest.raises(pc.CsiRangeError):
            pc.csi_query(small_index, 0, 0, (1 << 29) + 1)

    def test_results_are_values_not_views(self, small_index):
        chunks = pc.csi_query(small_index, 0, 0, 1000)
        chunks.clear()
        assert len(pc.csi_query(small_index, 0, 0, 1000)) == 4


class TestLinearPruning:

    def test_chunks_ending_before_min_offset_are_dropped(self):
        ref = pc.ReferenceSequence(bins=[
            pc.Bin(0, 300, [(10, 20), (400, 500)]),
            pc.Bin(4681, 300, [(300, 350)]),
        ])
        index = pc.Index(14, 5, references=[ref])
        assert _tuples(index.query(0, 0, 10)) == [(300, 350), (400, 500)]

    def test_only_bins_starting_at_or_before_query_start_count(self):
        ref = pc.ReferenceSequence(bins=[
            pc.Bin(4681, 400, [(100, 200), (400, 450)]),
            pc.Bin(4682, 5, [(600, 700)]),
        ])
        index = pc.Index(14, 5, references=[ref])
        assert _tuples(index.query(0, 100, 20000)) == [(400, 450), (600, 700)]

    def test_bins_without_loffset_are_ignored(self):
        ref = pc.ReferenceSequence(bins=[
            pc.Bin(4681, None, [(100, 200)]),
            pc.Bin(0, 150, [(160, 170)]),
        ])
        assert ref.min_offset(0, 14, 5) == pc.VirtualPosition(150)
        index = pc.Index(14, 5, references=[ref])
        assert _tuples(index.query(0, 0, 10)) == [(100, 200)]

    def test_no_offsets_means_no_pruning(self):
        ref = pc.ReferenceSequence(bins=[pc.Bin(4681, None, [(0, 5)])])
        assert ref.min_offset(0, 14, 5) == pc.VirtualPosition(0)

    def test_duplicate_bin_ids_are_all_used(self):
        ref = pc.ReferenceSequence(bins=[
            pc.Bin(4681, 0, [(0, 10)]),
            pc.Bin(4681, 0, [(50, 60)]),
        ])
        index = pc.Index(14, 5, references=[ref])
        assert _tuples(index.query(0, 0, 1)) == [(0, 10), (50, 60)]


# ---------------------------------------------------------------------------
# built index: no false negatives
# ---------------------------------------------------------------------------
def test_query_soundness_on_built_index(records, built_index):
    rng = random.Random(17)
    by_ref = {}
    for rec in records:
        by_ref.setdefault(rec[0], []).append(rec)

    for _ in range(300):
        ref_id = rng.randrange(0, 3)
        qstart = rng.randrange(0, 3_400_000)
        qend = qstart + rng.choice([1, 100, 5000, 70000, 1_000_000])
        chunks = pc.csi_query(built_index, ref_id, qstart, qend)
        for _, start, end, chunk_start, chunk_end in by_ref[ref_id]:
            if start < qend and qstart < end:
                assert _covered((chunk_start, chunk_end), chunks), (ref_id, qstart, qend, start, end)


# ---------------------------------------------------------------------------
# region strings, summaries
# ---------------------------------------------------------------------------
def test_query_region_uses_tabix_names():
    header = pc.TabixHeader(names=["chr1", "chr2"])
    ref = pc.ReferenceSequence(bins=[pc.Bin(4681, 0, [(0, 10)])])
    index = pc.Index(14, 5, aux=header.encode(), references=[pc.ReferenceSequence(), ref])
    assert _tuples(pc.csi_query_region(index, "chr2:1-1000")) == [(0, 10)]
    assert _tuples(pc.csi_query_region(index, "chr2")) == [(0, 10)]
    assert pc.csi_query_region(index, "chr1:5-6") == []


def test_query_region_explicit_names(small_index):
    chunks = pc.csi_query_region(small_index, "a:1-1000", names=["a", "b"])
    assert chunks == pc.csi_query(small_index, 0, 0, 1000)


def test_query_region_unknown_name(small_index):
    with pytest.raises(pc.CsiRangeError):
        pc.csi_query_region(small_index, "chrZ:1-10", names=["a", "b"])


def test_query_region_without_names():
    index = pc.Index(14, 5, references=[pc.ReferenceSequence()])
    with pytest.raises(pc.CsiRangeError):
        pc.csi_query_region(index, "chr1:1-10")


def test_summary(small_index):
    df = small_index.summary()
    assert list(df["ref_id"]) == [0, 1]
    assert list(df["n_bins"]) == [4, 0]
    assert df.loc[0, "n_mapped"] == 6
    assert df.loc[0, "n_unmapped"] == 1
    assert df["n_mapped"].isna().tolist() == [False, True]


def test_index_to_df(small_index):
    df = pc.csi_index_to_df(small_index)
    assert len(df) == 5
    leaf = df[df["bin_id"] == 4681]
    assert leaf["level"].tolist() == [0, 0]
    assert leaf["chunk_start"].tolist() == [100, 300]
    assert df[df["bin_id"] == 0]["level"].tolist() == [5]
    assert set(df["ref_id"]) == {0}

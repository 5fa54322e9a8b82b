import random

import pytest

import pycsi as pc


def make_records(seed=7, n_refs=3, per_ref=400, max_pos=3_000_000):
    """Synthetic coordinate-sorted records laid out back to back in a fake stream.

    Each record occupies 90 uncompressed bytes; blocks hold 64 KiB of
    uncompressed data and are assumed to compress to 20 000 bytes.
    Returns tuples ``(ref_id, start, end, chunk_start, chunk_end)``.
    """
    rng = random.Random(seed)
    records = []
    upos = 0

    def vpos(u):
        return pc.VirtualPosition.from_parts((u >> 16) * 20000, u & 0xFFFF)

    for ref_id in range(n_refs):
        starts = sorted(rng.randrange(0, max_pos) for _ in range(per_ref))
        for start in starts:
            length = rng.choice([1, 50, 150, 2000, 40000, 300000])
            chunk_start = vpos(upos)
            upos += 90
            records.append((ref_id, start, start + length, chunk_start, vpos(upos)))
    return records


@pytest.fixture
def records():
    return make_records()


@pytest.fixture
def built_index(records):
    return pc.csi_build(records)


@pytest.fixture
def small_index():
    ref0 = pc.ReferenceSequence(
        bins=[
            pc.Bin(4681, 100, [(100, 200), (300, 400)]),
            pc.Bin(585, 50, [(50, 90)]),
            pc.Bin(0, 10, [(10, 20)]),
            pc.Bin(4682, 500, [(500, 600)]),
        ],
        metadata=pc.Metadata(10, 600, 6, 1),
    )
    ref1 = pc.ReferenceSequence()
    return pc.Index(min_shift=14, depth=5, aux=b"\x01\x02\x03", references=[ref0, ref1], n_no_coor=5)

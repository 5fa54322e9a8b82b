"""
Build, write, re-read and query a small synthetic index.

Usage:
    python tools/examples.py [out.csi]
"""

import sys
import tempfile
from pathlib import Path

import pycsi


def main():
    header = pycsi.TabixHeader(names=["chr1", "chr2"])
    builder = pycsi.IndexBuilder(aux=header)
    offset = 0
    for ref_id, starts in enumerate([range(0, 200000, 1500), range(500, 90000, 7000)]):
        for start in starts:
            chunk = (offset, offset + 120)
            builder.add_record(ref_id, start, start + 300, chunk)
            offset += 120
    index = builder.build()

    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(tempfile.mkdtemp()) / "example.csi"
    pycsi.csi_write(index, out)
    index = pycsi.csi_read(out)
    print("Wrote:", out)

    print("Summary:")
    print(index.summary())

    print("Chunks for chr1:100,001-101,000:")
    print(pycsi.csi_chunks_to_df(pycsi.csi_query_region(index, "chr1:100,001-101,000")))


if __name__ == "__main__":
    main()

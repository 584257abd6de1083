from __future__ import annotations
import os
import glob
import bamnostic as bn


def _expand_bam_patterns(bams: list[str]) -> list[str]:
    """Expand glob patterns (sample*.bam) cross-platform; keep order; de-dupe."""
    seen = set()
    out: list[str] = []
    for pat in bams:
        matches = glob.glob(pat) if any(ch in pat for ch in "*?[]") else ([pat] if os.path.exists(pat) else [])
        if not matches:
            print(f"[WARNING] No BAMs matched: {pat}")
        for m in sorted(matches):
            if m not in seen:
                seen.add(m)
                out.append(m)
    return out


def _ref_name(names: list[str], ref_id: int) -> str:
    return names[ref_id] if 0 <= ref_id < len(names) else "*"


def view_bam_head(bams: list[str], n: int = 10, include_unmapped: bool = False) -> int:
    """
    Print the first N reads from each BAM file, with the reference id and
    mate reference id each read points at. Handy for eyeballing a file before
    and after `forget`.

    Output is TSV: read_name, refID:name, pos, mate refID:name, mate pos
    """
    bam_paths = _expand_bam_patterns(bams)
    if not bam_paths:
        print("[ERROR] No BAM files found.")
        return 1

    for bam in bam_paths:
        try:
            bf = bn.AlignmentFile(bam, "rb")
        except Exception as e:
            print(f"[ERROR] Could not open {bam}: {e}")
            return 1

        print(f"== {bam} ==")
        try:
            names = list(getattr(bf, "references", []) or [])
            printed = 0
            for aln in bf:
                if not include_unmapped and getattr(aln, "is_unmapped", False):
                    continue
                name = getattr(aln, "read_name", None) or getattr(aln, "query_name", None) or "NA"
                ref_id = getattr(aln, "refID", -1)
                mate_id = getattr(aln, "next_refID", -1)
                pos_1b = (getattr(aln, "pos", 0) or 0) + 1  # bamnostic uses 0-based pos
                mpos_1b = (getattr(aln, "next_pos", 0) or 0) + 1
                print(
                    f"{name}\t{ref_id}:{_ref_name(names, ref_id)}\t{pos_1b}"
                    f"\t{mate_id}:{_ref_name(names, mate_id)}\t{mpos_1b}"
                )
                printed += 1
                if printed >= n:
                    break

            if printed == 0:
                print("[info] No reads found." if include_unmapped else "[info] No mapped reads found.")
        finally:
            bf.close()

    return 0

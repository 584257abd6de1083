from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import pysam

from .pruneClasses import ContentsSummary, RefEntry

NAME = "contents"


def _make_logger(level: str) -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("bamprune.contents")
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


def _parse_fields(cols: List[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for c in cols:
        if len(c) > 3 and c[2] == ":":
            out[c[:2]] = c[3:]
    return out


def parse_header_text(text: str) -> Tuple[Optional[Dict[str, str]], List[Dict[str, str]], List[Dict[str, str]], List[Dict[str, str]], List[str]]:
    """Split SAM header text into (HD, SQ lines, RG lines, PG lines, CO lines)."""
    hd = None
    sq: List[Dict[str, str]] = []
    rg: List[Dict[str, str]] = []
    pg: List[Dict[str, str]] = []
    co: List[str] = []
    for line in text.splitlines():
        if not line.startswith("@"):
            continue
        tag, _, rest = line.partition("\t")
        if tag == "@CO":
            co.append(rest)
            continue
        fields = _parse_fields(rest.split("\t"))
        if tag == "@HD":
            hd = fields
        elif tag == "@SQ":
            sq.append(fields)
        elif tag == "@RG":
            rg.append(fields)
        elif tag == "@PG":
            pg.append(fields)
    return hd, sq, rg, pg, co


def header_problems(hd, sq, rg, pg) -> List[str]:
    """Basic well-formedness checks on a parsed header."""
    problems: List[str] = []
    if hd is not None and "VN" not in hd:
        problems.append("@HD line without VN")
    seen = set()
    for i, s in enumerate(sq):
        name = s.get("SN")
        if not name:
            problems.append(f"@SQ line {i} without SN")
            continue
        if name in seen:
            problems.append(f"duplicate @SQ SN:{name}")
        seen.add(name)
        try:
            if int(s.get("LN", "")) <= 0:
                problems.append(f"@SQ SN:{name} has non-positive LN")
        except ValueError:
            problems.append(f"@SQ SN:{name} has missing or invalid LN")
    for kind, lines in (("@RG", rg), ("@PG", pg)):
        ids = [x.get("ID") for x in lines]
        if None in ids:
            problems.append(f"{kind} line without ID")
        dups = sorted({i for i in ids if i is not None and ids.count(i) > 1})
        for d in dups:
            problems.append(f"duplicate {kind} ID:{d}")
    return problems


def _read_line(aln, references: List[RefEntry]) -> str:
    def _ref(i):
        return references[i].name if 0 <= i < len(references) else "*"

    # pysam positions are 0-based, -1 when absent
    pos_1b = aln.reference_start + 1
    mpos_1b = aln.next_reference_start + 1
    return (
        f"{aln.query_name or 'NA'}\tflag={aln.flag}\t{_ref(aln.reference_id)}:{pos_1b}"
        f"\tMAPQ={aln.mapping_quality}\tCIGAR={aln.cigarstring or '*'}"
        f"\tmate={_ref(aln.next_reference_id)}:{mpos_1b}"
    )


def summarize_bam(
    bam: str,
    *,
    reads_to_report: int = 10,
    refs_to_report: int = 10,
    quit_early: bool = False,
    quiet: bool = False,
    raw: bool = False,
    raw_to_report: int = 1000,
    progress: int = 0,
    log_level: str = "INFO",
) -> Optional[ContentsSummary]:
    """
    Print a summary of a BAM file's header and reads.

    Output covers the @HD line, the reference dictionary (only the first
    refs_to_report entries when there are more), read groups, programs,
    comments, the first reads_to_report reads and the number of reads
    examined. With quiet only the header is checked (and printed when raw is
    also set). "-" reads standard input. Returns None when the file cannot be
    opened.
    """
    logger = _make_logger(log_level)
    try:
        bf = pysam.AlignmentFile(bam, "rb", check_sq=False)
    except (OSError, ValueError) as e:
        logger.error(f"Could not open {bam}: {e}")
        return None

    try:
        text = bf.text or ""
        hd, sq, rg, pg, co = parse_header_text(text)

        # binary dictionary is authoritative; the text may omit @SQ lines
        names = list(bf.references)
        lengths = list(bf.lengths)
        if names:
            references = [RefEntry(n, int(l)) for n, l in zip(names, lengths)]
        else:
            references = [RefEntry(s.get("SN", ""), int(s.get("LN", 0) or 0)) for s in sq]

        problems = header_problems(hd, sq, rg, pg)
        if problems:
            print(f"{NAME} header not well-formed, errors are:")
            for p in problems:
                print(f"  {p}")

        if raw:
            if len(text) > raw_to_report:
                print(f"{NAME} header string, first {raw_to_report} characters:")
                print(text[:raw_to_report])
            else:
                print(f"{NAME} header string, complete contents:")
                print(text, end="")

        summary = ContentsSummary(
            header_line=hd, references=references, read_groups=rg,
            programs=pg, comments=co, reads_examined=0,
        )
        if quiet:
            return summary

        if hd:
            parts = [f"{k}:'{hd[k]}'" for k in ("VN", "SO", "GO") if k in hd]
            print(f"{NAME}[headerline] " + " ".join(parts))
        else:
            print(f"{NAME}[headerline] no header line found")

        if references:
            if len(references) > refs_to_report:
                print(f"{NAME}[ref] displaying the first {refs_to_report} of {len(references)} reference sequences")
            for i, r in enumerate(references[:refs_to_report]):
                print(f"{NAME}[ref] @SQ ID:{i}\tSN:{r.name}\tLN:{r.length}")
        else:
            print(f"{NAME}[ref] no reference sequences found")

        if rg:
            for g in rg:
                print(f"{NAME}[readgroup] @RG " + " ".join(f"{k}:'{v}'" for k, v in g.items()))
        else:
            print(f"{NAME}[readgroup] no read group dictionary found")

        if pg:
            for p in pg:
                print(
                    f"{NAME}[program] @PG ID:'{p.get('ID', '')}' PN:'{p.get('PN', '')}' "
                    f"CL:'{p.get('CL', '')}' PP:'{p.get('PP', '')}' VN:'{p.get('VN', '')}'"
                )
        else:
            print(f"{NAME}[program] no program information found")

        if co:
            for c in co:
                print(f"{NAME}[comment] @CO '{c}'")
        else:
            print(f"{NAME}[comment] no comment lines found")

        if reads_to_report:
            print(f"{NAME}[read] printing the first {reads_to_report} reads")
        n_reads = 0
        for aln in bf.fetch(until_eof=True):
            n_reads += 1
            if n_reads <= reads_to_report:
                print(f"{NAME}[read] {_read_line(aln, references)}")
            if progress and n_reads % progress == 0:
                logger.info(f"{n_reads:,} reads processed...")
            if quit_early and reads_to_report and n_reads >= reads_to_report:
                break

        print(f"{NAME}[read] {n_reads} reads examined from the BAM file")
        summary.reads_examined = n_reads
        return summary
    finally:
        bf.close()

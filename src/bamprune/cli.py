import argparse

from .viewer import view_bam_head
from .contents import summarize_bam
from .forget import forget_bam


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Drop unused references and renumber records
    if args.cmd == "forget":
        return forget_bam(
            inputs=args.bams,
            output=args.output,
            keep_mate_only=not args.forget_mate_only,
            progress_interval=args.progress,
            log_level=args.log_level,
        )

    # Summarize header and reads
    elif args.cmd in ["contents", "inu"]:
        if len(args.bams) > 1:
            print("[ERROR] contents takes at most one BAM file as input")
            return 2
        summary = summarize_bam(
            args.bams[0] if args.bams else "-",
            reads_to_report=args.reads_to_report,
            refs_to_report=args.refs_to_report,
            quit_early=args.quit,
            quiet=args.quiet,
            raw=args.raw,
            raw_to_report=args.raw_to_report,
            progress=args.progress,
            log_level=args.log_level,
        )
        return 0 if summary is not None else 1

    # Test by taking the top-view (head) of BAM files
    elif args.cmd in ["view", "head"]:
        return view_bam_head(args.bams, n=args.num, include_unmapped=args.all)

    else:
        parser.error("Unknown command")

    return 2


def _non_negative(value: str) -> int:
    n = int(value)
    if n < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bamprune",
        description="Prune unused reference sequences from BAM files."
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # forget
    f = sub.add_parser(
        "forget",
        help="Remove reference sequences (@SQ) no read uses and renumber reads to match."
    )
    f.add_argument(
        "bams",
        nargs="*",
        help="At most one input BAM. Reads standard input if omitted, which must then be seekable "
             "(redirected from a file), since two passes are made."
    )
    f.add_argument(
        "-o", "--output",
        default=None,
        help="Output BAM (default: standard output)."
    )
    f.add_argument(
        "--forget-mate-only",
        dest="forget_mate_only",
        action="store_true",
        help="Also forget references used only by mates; those mate reference ids become unmapped (-1). "
             "Mate flags are not changed."
    )
    f.add_argument(
        "--progress",
        type=_non_negative,
        default=100000,
        help="Log progress every N reads in each pass, 0 to disable (default 100000)."
    )
    f.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )

    # contents
    c = sub.add_parser(
        "contents",
        aliases=["inu"],
        help="Summarize the header, references and reads of a BAM file."
    )
    c.add_argument(
        "bams",
        nargs="*",
        help="BAM file to summarize (at most one). Reads standard input if omitted."
    )
    c.add_argument(
        "--reads-to-report",
        type=_non_negative,
        default=10,
        help="Print this many reads (default 10)."
    )
    c.add_argument(
        "--refs-to-report",
        type=_non_negative,
        default=10,
        help="Print this many references (default 10)."
    )
    c.add_argument(
        "--quit",
        action="store_true",
        help="Quit early, don't count all reads."
    )
    c.add_argument(
        "--quiet",
        action="store_true",
        help="Only check the header; combine with --raw to print raw header lines."
    )
    c.add_argument(
        "--raw",
        action="store_true",
        help="Print raw header contents."
    )
    c.add_argument(
        "--raw-to-report",
        type=_non_negative,
        default=1000,
        help="Number of --raw header characters to print (default 1000)."
    )
    c.add_argument(
        "--progress",
        type=_non_negative,
        default=0,
        help="Log reads processed every N reads (default 0, off)."
    )
    c.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )

    # Sanity checking of BAM files
    t = sub.add_parser(
        "view",
        aliases=["head"],
        help="Print first N reads from each BAM file with their reference ids."
    )
    t.add_argument(
        "bams",
        nargs="+",
        help="One or more BAM files."
    )
    t.add_argument(
        "-n", "--num",
        type=int,
        default=10,
        help="Number of reads per BAM."
    )
    t.add_argument(
        "--all",
        action="store_true",
        help="Include unmapped reads."
    )
    return p

if __name__ == "__main__":
    raise SystemExit(main())

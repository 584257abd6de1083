from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Sequence

import psutil

from .bamio import STDIO, BamSink, BamSource, build_header
from .errors import BamPruneError, ConfigurationError, InvariantViolation
from .pruneClasses import ForgetConfig, ForgetResult
from .remap import build_remap
from .rewrite import rewrite_records
from .usage import analyze_usage


class EngineState(Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    BUILDING = "building"
    REWRITING = "rewriting"
    DONE = "done"
    FAILED = "failed"


def _get_memory_usage():
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024 # Current memory usage in MB


def _make_logger(level: str) -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("bamprune.forget")
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


class ForgetEngine:
    """
    Drop references no record uses from a BAM header and renumber the records.

    Two passes over a single input: the first collects which references are
    used, the second rewrites each record's reference and mate reference ids
    into the compacted dictionary. Memory is bounded by the dictionary size,
    not the number of records.
    """

    def __init__(
        self,
        config: ForgetConfig,
        inputs: Sequence[str] = (),
        output: Optional[str] = None,
        *,
        source_factory: Callable[[Optional[str]], BamSource] = BamSource,
        sink_factory: Callable[[Optional[str], dict], BamSink] = BamSink,
        progress: Callable[[int], None] | None = None,
        should_stop: Callable[[], bool] | None = None,
        logger: logging.Logger | None = None,
    ):
        if len(inputs) > 1:
            raise ConfigurationError(f"at most one BAM input may be given, got {len(inputs)}")
        self.config = config
        self.input = inputs[0] if inputs else None
        self.output = output
        self.source_factory = source_factory
        self.sink_factory = sink_factory
        self.progress = progress
        self.should_stop = should_stop
        self.logger = logger or logging.getLogger("bamprune.forget")
        self.state = EngineState.IDLE
        self.failed_stage: Optional[EngineState] = None
        self.output_opened = False
        self._records = 0

    def _enter(self, state: EngineState) -> None:
        self.logger.debug(f"{self.state.value} -> {state.value}")
        self.state = state
        self._records = 0

    def _counting(self, records: Iterable) -> Iterator:
        for rec in records:
            self._records += 1
            yield rec

    def _report(self, n: int) -> None:
        self.logger.info(f"[{self.state.value}] Processed {n:,} records... ({_get_memory_usage():.1f} MB)")
        if self.progress is not None:
            self.progress(n)

    def run(self) -> ForgetResult:
        if self.state is not EngineState.IDLE:
            raise ConfigurationError(f"engine already used (state={self.state.value})")

        source = self.source_factory(self.input)
        if not source.can_restart:
            self.state = EngineState.FAILED
            raise ConfigurationError(
                f"{source.name} is not seekable; forget needs two passes, give a BAM file instead",
                stage=EngineState.IDLE.value,
                records=0,
            )

        sink = None
        try:
            self._enter(EngineState.ANALYZING)
            source.open()
            dictionary = source.dictionary
            template = source.header
            self.logger.info(f"Analyzing {source.name}: {len(dictionary):,} references in header")
            usage, n_in = analyze_usage(
                self._counting(source.records()),
                len(dictionary),
                progress=self._report,
                progress_interval=self.config.progress_interval,
                should_stop=self.should_stop,
            )
            self.logger.info(
                f"{n_in:,} records; {len(usage.used_direct):,} references used directly, "
                f"{len(usage.used_by_mate):,} by mates"
            )

            self._enter(EngineState.BUILDING)
            new_dictionary, table = build_remap(dictionary, usage, self.config.keep_mate_only)
            self.logger.info(
                f"Keeping {len(new_dictionary):,} of {len(dictionary):,} references"
                + (" (unchanged)" if table.is_identity() else "")
            )

            self._enter(EngineState.REWRITING)
            source.restart()
            sink = self.sink_factory(self.output, build_header(template, new_dictionary))
            sink.open()
            self.output_opened = True
            n_out = rewrite_records(
                self._counting(source.records()),
                sink,
                table,
                progress=self._report,
                progress_interval=self.config.progress_interval,
                should_stop=self.should_stop,
            )
            if n_out != n_in:
                raise InvariantViolation(f"input changed between passes: {n_in} then {n_out} records")
            out, sink = sink, None
            out.close()
        except BamPruneError as e:
            if e.stage is None:
                e.stage = self.state.value
            if e.records is None:
                e.records = self._records
            self._fail(sink)
            raise
        except Exception:
            self._fail(sink)
            raise
        finally:
            source.close()

        self._enter(EngineState.DONE)
        self._records = n_out
        return ForgetResult(
            original_reference_count=len(dictionary),
            new_reference_count=len(new_dictionary),
            records_processed=n_out,
        )

    def _fail(self, sink) -> None:
        failed_in = self.failed_stage = self.state
        self.state = EngineState.FAILED
        if sink is None:
            return
        try:
            sink.close()
        except BamPruneError as e:
            self.logger.debug(f"closing output after failure in {failed_in.value}: {e}")


def _discard_partial(engine: ForgetEngine, output: Optional[str], logger: logging.Logger) -> None:
    # the output exists only once the rewrite pass opened it
    if not engine.output_opened or output in (None, STDIO):
        return
    partial = Path(output)
    if partial.exists():
        partial.unlink()
        logger.info(f"Removed incomplete output {partial}")


def forget_bam(
    inputs: Sequence[str],
    output: Optional[str] = None,
    *,
    keep_mate_only: bool = True,
    progress_interval: int = 100000,
    log_level: str = "INFO",
) -> int:
    """
    Command-level wrapper: run the engine, log the outcome, and remove a
    partially written output file if the rewrite failed.
    """
    logger = _make_logger(log_level)
    try:
        config = ForgetConfig(keep_mate_only=keep_mate_only, progress_interval=progress_interval)
        engine = ForgetEngine(config, inputs, output, logger=logger)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    try:
        result = engine.run()
    except ConfigurationError as e:
        logger.error(str(e))
        return 2
    except BamPruneError as e:
        logger.error(f"{e.kind} error: {e}")
        _discard_partial(engine, output, logger)
        return 1
    except Exception as e:
        logger.error(f"{type(e).__name__} during {engine.failed_stage.value if engine.failed_stage else 'forget'}: {e}")
        _discard_partial(engine, output, logger)
        return 1

    logger.info(
        f"Done: {result.records_processed:,} records, references "
        f"{result.original_reference_count:,} -> {result.new_reference_count:,}"
    )
    return 0

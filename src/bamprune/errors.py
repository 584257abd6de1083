from __future__ import annotations


class BamPruneError(Exception):
    """Base error; ``stage`` and ``records`` are filled in by the engine on failure."""

    kind = "error"

    def __init__(self, message: str, *, stage: str | None = None, records: int | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.records = records

    def __str__(self) -> str:
        if self.stage is None:
            return self.message
        return f"{self.message} (stage={self.stage}, records={self.records})"


class ConfigurationError(BamPruneError):
    kind = "configuration"


class SeekError(ConfigurationError):
    """The source cannot be restarted for a second pass."""
    kind = "seek"


class OpenError(BamPruneError):
    kind = "open"


class ReadError(BamPruneError):
    kind = "read"


class WriteError(BamPruneError):
    kind = "write"


class FlushError(WriteError):
    kind = "flush"


class InvariantViolation(BamPruneError):
    kind = "invariant"


class CancelledError(BamPruneError):
    kind = "cancelled"

"""Error taxonomy shared by every pipeline step.

Each failure carries a stable :class:`ErrorKind` and a human-readable message
so the HTTP layer (or any other caller) can present actionable guidance
without exposing a traceback.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    source_exhausted = "SourceExhausted"
    corrupt_artifact = "CorruptArtifact"
    tool_missing = "ToolMissing"
    tool_failed = "ToolFailed"
    artifact_not_found = "ArtifactNotFound"
    patch_not_applied = "PatchNotApplied"
    conflict_unresolved = "ConflictUnresolved"
    replace_failed = "ReplaceFailed"
    cancelled = "Cancelled"
    invalid_request = "InvalidRequest"


class PipelineError(Exception):
    kind: ErrorKind = ErrorKind.invalid_request

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SourceExhaustedError(PipelineError):
    kind = ErrorKind.source_exhausted

    def __init__(self, asset_path: str, attempts: int, last_error: str | None) -> None:
        self.asset_path = asset_path
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"All content sources failed for '{asset_path}' after {attempts} attempt(s){detail}"
        )


class CorruptArtifactError(PipelineError):
    kind = ErrorKind.corrupt_artifact


class InvalidArchiveError(CorruptArtifactError):
    """Extraction finished but the required marker file is absent."""


class KeyValuesSyntaxError(CorruptArtifactError):
    def __init__(self, message: str, offset: int) -> None:
        self.offset = offset
        super().__init__(f"{message} (at offset {offset})")


class ToolMissingError(PipelineError):
    kind = ErrorKind.tool_missing


class ToolFailedError(PipelineError):
    kind = ErrorKind.tool_failed

    def __init__(
        self,
        message: str,
        *,
        reason: str = "exit",
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        self.reason = reason
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class ArtifactNotFoundError(PipelineError):
    kind = ErrorKind.artifact_not_found


class PatchNotAppliedError(PipelineError):
    kind = ErrorKind.patch_not_applied


class ReplaceFailedError(PipelineError):
    kind = ErrorKind.replace_failed


class OperationCancelledError(PipelineError):
    kind = ErrorKind.cancelled

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)

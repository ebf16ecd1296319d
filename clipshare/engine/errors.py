"""Exceptions raised by the engine and the media pipeline.

Every class carries a machine-readable ``code`` and the HTTP ``status_code``
the web layer answers with. ``str(exc)`` is always a human-readable summary
that can be shown to the user as is.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base exception for all clipshare pipeline errors."""

    code: str = "PIPELINE_ERROR"
    status_code: int = 500
    message: str = "Media processing failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


# =============================================================================
# Engine lifecycle
# =============================================================================


class EnvironmentUnsupported(PipelineError):
    """The host cannot run the engine at all. Not retryable."""

    code = "ENVIRONMENT_UNSUPPORTED"
    message = "ffmpeg is not available on this host"

    def __init__(self, message: str | None = None, *, hint: str = ""):
        self.hint = hint
        super().__init__(f"{message or self.__class__.message}. {hint}" if hint else message)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "hint": self.hint}


class EngineLoadFailed(PipelineError):
    code = "ENGINE_LOAD_FAILED"
    message = "Failed to launch ffmpeg"


class EngineInitFailed(PipelineError):
    code = "ENGINE_INIT_FAILED"
    message = "ffmpeg did not report ready"


class EngineBusy(PipelineError):
    """Another operation holds the engine and the session rejects instead of queueing."""

    code = "ENGINE_BUSY"
    status_code = 429
    message = "Another media operation is already running, try again shortly"


# =============================================================================
# Caller errors (raised before any engine interaction)
# =============================================================================


class InvalidRange(PipelineError):
    code = "INVALID_RANGE"
    status_code = 400
    message = "Invalid trim range"


class InvalidBackground(PipelineError):
    code = "INVALID_BACKGROUND"
    status_code = 400
    message = "Unsupported background file"


class EmptyInput(PipelineError):
    code = "EMPTY_INPUT"
    status_code = 400
    message = "No clips to merge"


# =============================================================================
# Operation-level failures (engine-side state may exist, cleanup still runs)
# =============================================================================


class FetchFailed(PipelineError):
    code = "FETCH_FAILED"
    status_code = 502
    message = "Failed to download clip"

    def __init__(self, ref: str, reason: str = ""):
        self.ref = ref
        text = f"{self.__class__.message} {ref}"
        super().__init__(f"{text}: {reason}" if reason else text)


class StageWriteFailed(PipelineError):
    code = "STAGE_WRITE_FAILED"
    message = "Failed to stage input file"

    def __init__(self, name: str, reason: str = ""):
        self.name = name
        text = f"{self.__class__.message} {name}"
        super().__init__(f"{text}: {reason}" if reason else text)


class CommandFailed(PipelineError):
    code = "COMMAND_FAILED"
    message = "ffmpeg command failed"

    def __init__(self, stderr: str = "", returncode: int | None = None, message: str | None = None):
        self.stderr = stderr
        self.returncode = returncode
        if message is None:
            message = f"{stderr.strip()}" if stderr.strip() else f"{self.__class__.message} (exit={returncode})"
        super().__init__(message)


class OperationTimeout(CommandFailed):
    code = "OPERATION_TIMEOUT"
    status_code = 504
    message = "ffmpeg command timed out"

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(message=f"{self.__class__.message} after {timeout:g}s")


class OutputReadFailed(PipelineError):
    code = "OUTPUT_READ_FAILED"
    message = "ffmpeg produced no output"

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"{self.__class__.message} ({name} missing, the input codecs may be incompatible)"
        )


class OperationFailed(PipelineError):
    """Single wrapped error an operation propagates after its cleanup ran.

    ``cause`` is the originating error, ``phase`` the state the operation was
    in when it failed and ``warnings`` whatever cleanup could not remove.
    """

    code = "OPERATION_FAILED"

    def __init__(
        self,
        prefix: str,
        cause: BaseException,
        *,
        operation: str = "",
        phase: str = "",
        warnings: list[str] | None = None,
    ):
        self.prefix = prefix
        self.cause = cause
        self.operation = operation
        self.phase = phase
        self.warnings = list(warnings or [])
        if isinstance(cause, PipelineError):
            self.code = cause.code
            self.status_code = cause.status_code
        super().__init__(f"{prefix}: {cause}")

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "operation": self.operation,
            "phase": self.phase,
            "warnings": self.warnings,
        }

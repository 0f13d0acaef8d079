from __future__ import annotations


class SofunPipelineError(Exception):
    """Base class for errors raised by the run-and-read pipeline."""


class ExecutableUnavailable(SofunPipelineError, FileNotFoundError):
    """The model executable could neither be built nor copied into place."""


class NoVariablesRequested(SofunPipelineError, ValueError):
    """No output variable is switched on for the requested resolution."""


class UnsupportedImplementation(SofunPipelineError, ValueError):
    pass


class MalformedTimeCoordinate(SofunPipelineError, ValueError):
    pass


class SourceReadFailure(SofunPipelineError, OSError):
    """An output file exists but could not be read as expected."""

    def __init__(self, path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path

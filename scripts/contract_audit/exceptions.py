#!/usr/bin/env python3
"""
Contract Audit Exceptions Module

Custom exception classes for the static analysis pipeline.
Every exception carries an ErrorKind so the pipeline facade can turn it
into a returned AnalysisResult without guessing from message text.
"""

from enum import Enum

__all__ = [
    "ErrorKind",
    "ContractAuditError",
    "InputValidationError",
    "EmptyInputError",
    "OversizedInputError",
    "ScannerError",
    "ExecutionFailedError",
    "ToolTimeoutError",
    "AnalysisCancelledError",
    "ParseFailureError",
]


class ErrorKind(str, Enum):
    """Closed set of failure categories reported on AnalysisResult"""

    OVERSIZED_INPUT = "OversizedInput"
    EMPTY_INPUT = "EmptyInput"
    EXECUTION_FAILED = "ExecutionFailed"
    TIMED_OUT = "TimedOut"
    CANCELLED = "Cancelled"
    PARSE_FAILURE = "ParseFailure"
    UNKNOWN_FATAL = "UnknownFatal"


class ContractAuditError(Exception):
    """Base exception for all contract audit errors"""

    kind = ErrorKind.UNKNOWN_FATAL


class InputValidationError(ContractAuditError):
    """Raised before any I/O when the submitted source is unusable"""
    pass


class EmptyInputError(InputValidationError):
    """Raised when the source code is empty or whitespace only"""

    kind = ErrorKind.EMPTY_INPUT

    def __init__(self, message: str = "Source code cannot be empty"):
        super().__init__(message)


class OversizedInputError(InputValidationError):
    """Raised when the source code exceeds the configured byte limit"""

    kind = ErrorKind.OVERSIZED_INPUT

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Contract size exceeds maximum limit of {limit} bytes")


class ScannerError(ContractAuditError):
    """Raised when the external analysis tool fails"""

    kind = ErrorKind.EXECUTION_FAILED


class ExecutionFailedError(ScannerError):
    """Raised when the analysis tool cannot be started"""
    pass


class ToolTimeoutError(ScannerError):
    """Raised when the analysis tool exceeds its wall-clock budget"""

    kind = ErrorKind.TIMED_OUT

    def __init__(self, timeout_ms: int, elapsed_ms: int, stdout: bytes = b"", stderr: bytes = b""):
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Analysis timed out after {timeout_ms} ms")


class AnalysisCancelledError(ScannerError):
    """Raised when the caller aborts a running analysis"""

    kind = ErrorKind.CANCELLED

    def __init__(self, elapsed_ms: int = 0):
        self.elapsed_ms = elapsed_ms
        super().__init__("Analysis cancelled")


class ParseFailureError(ContractAuditError):
    """Reserved for callers that treat unreadable tool output as fatal.

    The pipeline itself never raises it: output that neither the structured
    nor the text attempt can read is reported as a successful, empty parse.
    """

    kind = ErrorKind.PARSE_FAILURE

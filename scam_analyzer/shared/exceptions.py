"""
Exception hierarchy for the scam analyzer.

Three families cover every failure the analyzer reports:
- ValidationError: malformed input (address, ABI, contract name, bytecode)
- SecurityError: policy violations, carrying a severity
- AnalysisError: downstream failures such as RPC fetches, carrying a cause

File: scam_analyzer/shared/exceptions.py
"""

from typing import Any, Dict, Optional


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ScamAnalyzerError(Exception):
    """Base exception for all analyzer errors."""

    code = "ANALYZER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and result metadata."""
        return {
            'error': self.__class__.__name__,
            'code': self.code,
            'message': self.message,
        }


class ValidationError(ScamAnalyzerError):
    """Raised when caller-supplied input has the wrong shape."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['field'] = self.field
        return data


class SecurityError(ScamAnalyzerError):
    """Raised on a security policy violation."""

    code = "SECURITY_ERROR"

    def __init__(self, message: str, severity: str = "high"):
        super().__init__(message)
        self.severity = severity

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['severity'] = self.severity
        return data


class AnalysisError(ScamAnalyzerError):
    """Raised when a downstream stage (RPC, provider, detector) fails."""

    code = "ANALYSIS_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['cause'] = repr(self.cause) if self.cause is not None else None
        return data


class BytecodeError(AnalysisError):
    """Raised when fetched bytecode is not well-formed hex."""

    code = "BYTECODE_ERROR"

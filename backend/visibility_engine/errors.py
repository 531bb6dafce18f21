"""
Engine Error Taxonomy
Every failure an assessment run can surface carries one of these codes
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Failure categories shared by the client, adapters and pipeline"""
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    RETRYABLE_TRANSPORT_ERROR = "RETRYABLE_TRANSPORT_ERROR"
    FATAL_AUTH_ERROR = "FATAL_AUTH_ERROR"
    FATAL_REQUEST_ERROR = "FATAL_REQUEST_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    CLASSIFICATION_ERROR = "CLASSIFICATION_ERROR"
    ANALYSIS_VALIDATION_ERROR = "ANALYSIS_VALIDATION_ERROR"
    PIPELINE_FAILED = "PIPELINE_FAILED"
    CANCELLED = "CANCELLED"


FATAL_CODES = frozenset({ErrorCode.FATAL_AUTH_ERROR, ErrorCode.FATAL_REQUEST_ERROR})


class VisibilityEngineError(Exception):
    """Base exception for engine errors"""
    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        data = {"code": self.code.value, "message": self.message, "details": self.details}
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        return data


class QuotaExceededError(VisibilityEngineError):
    """Rolling request window is full; retry_after holds the wait in seconds"""
    def __init__(self, retry_after: float, request_count: int, ceiling: int):
        super().__init__(
            f"Request quota exceeded ({request_count}/{ceiling}). "
            f"Try again in {int(retry_after)} seconds.",
            ErrorCode.RATE_LIMIT_EXCEEDED,
            {"request_count": request_count, "ceiling": ceiling},
            retry_after=retry_after,
        )


class QueryFailedError(VisibilityEngineError):
    """An answer-engine call failed for good"""
    pass


class ClassificationError(VisibilityEngineError):
    """A citation URL could not be classified"""
    def __init__(self, message: str, url: str):
        super().__init__(message, ErrorCode.CLASSIFICATION_ERROR, {"url": url})


class PipelineFailedError(VisibilityEngineError):
    """The whole assessment run had to be aborted"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PIPELINE_FAILED, details)

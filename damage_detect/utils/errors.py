"""Error handling utilities for the damage assessment pipeline."""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class ErrorType(Enum):
    """Enumeration of error types in the damage assessment pipeline."""

    # Bedrock API Errors
    BEDROCK_RATE_LIMIT = "BEDROCK_RATE_LIMIT"
    BEDROCK_QUOTA_EXHAUSTED = "BEDROCK_QUOTA_EXHAUSTED"
    BEDROCK_TIMEOUT = "BEDROCK_TIMEOUT"
    BEDROCK_AUTH_ERROR = "BEDROCK_AUTH_ERROR"
    BEDROCK_MODEL_ERROR = "BEDROCK_MODEL_ERROR"
    BEDROCK_INVALID_REQUEST = "BEDROCK_INVALID_REQUEST"
    BEDROCK_SERVICE_ERROR = "BEDROCK_SERVICE_ERROR"

    # Analysis boundary errors
    BOUNDARY_RATE_LIMIT = "BOUNDARY_RATE_LIMIT"
    BOUNDARY_QUOTA_EXHAUSTED = "BOUNDARY_QUOTA_EXHAUSTED"
    BOUNDARY_HTTP_ERROR = "BOUNDARY_HTTP_ERROR"
    BOUNDARY_REJECTED = "BOUNDARY_REJECTED"
    BOUNDARY_TRANSPORT_ERROR = "BOUNDARY_TRANSPORT_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Media processing errors
    PAYLOAD_PARSE_FAILED = "PAYLOAD_PARSE_FAILED"
    FRAME_EXTRACTION_FAILED = "FRAME_EXTRACTION_FAILED"

    # Orchestration errors
    BATCH_ALL_UNITS_FAILED = "BATCH_ALL_UNITS_FAILED"
    ANALYSIS_IN_PROGRESS = "ANALYSIS_IN_PROGRESS"

    # Report errors
    EXPORT_FAILED = "EXPORT_FAILED"


@dataclass
class ErrorContext:
    """
    Context information for errors in the damage assessment pipeline.

    Attributes:
        error_type: Type of error from ErrorType enum
        message: Human-readable error message
        recoverable: Whether the error can be recovered from
        fallback_action: Optional description of fallback action taken
        details: Optional additional error details
        original_exception: Optional original exception that caused this error
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    fallback_action: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error context to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "fallback_action": self.fallback_action,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None
        }


class DamageDetectError(Exception):
    """
    Base exception for all damage assessment errors.

    Wraps errors with additional context so callers can turn them into
    user-facing notices or HTTP error bodies.

    Attributes:
        context: ErrorContext with detailed error information
    """

    def __init__(self, context: ErrorContext):
        """
        Initialize damage assessment error.

        Args:
            context: ErrorContext with error details
        """
        self.context = context
        super().__init__(context.message)

    @property
    def error_type(self) -> ErrorType:
        return self.context.error_type

    def __str__(self) -> str:
        """String representation of the error."""
        base = f"{self.context.error_type.value}: {self.context.message}"
        if self.context.fallback_action:
            base += f" (Fallback: {self.context.fallback_action})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error
        """
        return self.context.to_dict()


class BedrockAPIError(DamageDetectError):
    """Exception for AWS Bedrock API errors."""

    @classmethod
    def from_client_error(
        cls,
        error: Exception,
        operation: str,
        recoverable: bool = False,
        fallback_action: Optional[str] = None
    ) -> "BedrockAPIError":
        """
        Create BedrockAPIError from boto3 ClientError.

        Args:
            error: Original boto3 ClientError
            operation: Description of operation that failed
            recoverable: Whether error is recoverable
            fallback_action: Optional fallback action description

        Returns:
            BedrockAPIError instance
        """
        error_code = "Unknown"
        error_message = str(error)

        if hasattr(error, 'response'):
            error_info = error.response.get("Error", {})
            error_code = error_info.get("Code", "Unknown")
            error_message = error_info.get("Message", str(error))

        error_type_map = {
            "ThrottlingException": ErrorType.BEDROCK_RATE_LIMIT,
            "TooManyRequestsException": ErrorType.BEDROCK_RATE_LIMIT,
            "ServiceQuotaExceededException": ErrorType.BEDROCK_QUOTA_EXHAUSTED,
            "RequestTimeout": ErrorType.BEDROCK_TIMEOUT,
            "RequestTimeoutException": ErrorType.BEDROCK_TIMEOUT,
            "UnauthorizedException": ErrorType.BEDROCK_AUTH_ERROR,
            "AccessDeniedException": ErrorType.BEDROCK_AUTH_ERROR,
            "ValidationException": ErrorType.BEDROCK_INVALID_REQUEST,
            "ModelNotReadyException": ErrorType.BEDROCK_MODEL_ERROR,
            "ModelTimeoutException": ErrorType.BEDROCK_TIMEOUT,
            "ServiceUnavailableException": ErrorType.BEDROCK_SERVICE_ERROR,
            "InternalServerException": ErrorType.BEDROCK_SERVICE_ERROR,
        }

        error_type = error_type_map.get(error_code, ErrorType.BEDROCK_SERVICE_ERROR)

        context = ErrorContext(
            error_type=error_type,
            message=f"Bedrock API error during {operation}: {error_message}",
            recoverable=recoverable,
            fallback_action=fallback_action,
            details={
                "error_code": error_code,
                "operation": operation
            },
            original_exception=error
        )

        return cls(context)


class AnalysisClientError(DamageDetectError):
    """
    Exception for a failed submission to the analysis boundary.

    Rate limiting and quota exhaustion get their own error types, but the
    batch treats every AnalysisClientError the same way: the unit is skipped.
    """

    @classmethod
    def from_status(
        cls,
        status_code: int,
        message: str,
    ) -> "AnalysisClientError":
        """
        Create error for a non-2xx boundary response.

        Args:
            status_code: HTTP status returned by the boundary
            message: Error text from the response body

        Returns:
            AnalysisClientError instance
        """
        if status_code == 429:
            error_type = ErrorType.BOUNDARY_RATE_LIMIT
        elif status_code == 402:
            error_type = ErrorType.BOUNDARY_QUOTA_EXHAUSTED
        else:
            error_type = ErrorType.BOUNDARY_HTTP_ERROR

        context = ErrorContext(
            error_type=error_type,
            message=message or f"Analysis service returned HTTP {status_code}",
            recoverable=True,
            fallback_action="Skip unit",
            details={"status_code": status_code}
        )
        return cls(context)

    @classmethod
    def rejected(cls, message: str) -> "AnalysisClientError":
        """Create error for a 2xx response that carries an ``error`` field."""
        context = ErrorContext(
            error_type=ErrorType.BOUNDARY_REJECTED,
            message=message,
            recoverable=True,
            fallback_action="Skip unit"
        )
        return cls(context)

    @classmethod
    def transport_failed(cls, error: Exception) -> "AnalysisClientError":
        """
        Create error for a request that never produced a response.

        Args:
            error: Original transport exception (connect error, timeout, ...)

        Returns:
            AnalysisClientError instance
        """
        context = ErrorContext(
            error_type=ErrorType.BOUNDARY_TRANSPORT_ERROR,
            message=f"Could not reach analysis service: {str(error) or type(error).__name__}",
            recoverable=True,
            fallback_action="Skip unit",
            original_exception=error
        )
        return cls(context)

    @property
    def status_code(self) -> Optional[int]:
        return (self.context.details or {}).get("status_code")


class InvalidRequestError(DamageDetectError):
    """Exception for malformed requests to the boundary service."""

    @classmethod
    def no_image(cls) -> "InvalidRequestError":
        context = ErrorContext(
            error_type=ErrorType.INVALID_REQUEST,
            message="No image provided",
            recoverable=False
        )
        return cls(context)

    @classmethod
    def invalid_image(cls, error: Exception) -> "InvalidRequestError":
        context = ErrorContext(
            error_type=ErrorType.INVALID_REQUEST,
            message="Image must be a base64 data URI",
            recoverable=False,
            original_exception=error
        )
        return cls(context)


class PayloadParseError(DamageDetectError):
    """Exception for model or boundary text that is not a JSON object."""

    @classmethod
    def invalid_json(cls, text: Any, error: Optional[Exception] = None) -> "PayloadParseError":
        """
        Create error for unparseable payload text.

        Args:
            text: The raw text that failed to parse
            error: Optional original decode exception

        Returns:
            PayloadParseError instance
        """
        preview = text[:200] if isinstance(text, str) else repr(text)[:200]
        reason = str(error) if error else "payload is not a JSON object"
        context = ErrorContext(
            error_type=ErrorType.PAYLOAD_PARSE_FAILED,
            message=f"Invalid analysis payload: {reason}",
            recoverable=True,
            fallback_action="Substitute fallback result",
            details={"preview": preview},
            original_exception=error
        )
        return cls(context)


class FrameExtractionError(DamageDetectError):
    """Exception for video frame extraction failures."""

    @classmethod
    def capture_unavailable(cls, source: str) -> "FrameExtractionError":
        """
        Create error for a video that cannot be opened.

        Args:
            source: Path or name of the video source

        Returns:
            FrameExtractionError instance
        """
        context = ErrorContext(
            error_type=ErrorType.FRAME_EXTRACTION_FAILED,
            message=f"Could not open video capture for '{source}'",
            recoverable=True,
            fallback_action="Discard video frames",
            details={"source": source}
        )
        return cls(context)

    @classmethod
    def invalid_duration(cls, duration: Any) -> "FrameExtractionError":
        context = ErrorContext(
            error_type=ErrorType.FRAME_EXTRACTION_FAILED,
            message=f"Video duration is unusable: {duration!r}",
            recoverable=True,
            fallback_action="Discard video frames",
            details={"duration": duration}
        )
        return cls(context)

    @classmethod
    def frame_failed(
        cls,
        index: int,
        timestamp: float,
        error: Exception
    ) -> "FrameExtractionError":
        """
        Create error for a seek, grab or encode failure.

        Args:
            index: Index of the frame being captured
            timestamp: Sample time in seconds
            error: Original exception

        Returns:
            FrameExtractionError instance
        """
        context = ErrorContext(
            error_type=ErrorType.FRAME_EXTRACTION_FAILED,
            message=f"Failed to capture frame {index} at {timestamp:.2f}s: {str(error)}",
            recoverable=True,
            fallback_action="Discard video frames",
            details={"index": index, "timestamp": timestamp},
            original_exception=error
        )
        return cls(context)


class BatchAnalysisError(DamageDetectError):
    """Exception for a batch in which no unit could be analyzed."""

    @classmethod
    def all_units_failed(cls, total_units: int, unit_label: str) -> "BatchAnalysisError":
        """
        Create error for a batch with zero successful units.

        Args:
            total_units: Number of units attempted
            unit_label: "image" or "frame"

        Returns:
            BatchAnalysisError instance
        """
        context = ErrorContext(
            error_type=ErrorType.BATCH_ALL_UNITS_FAILED,
            message=f"Could not analyze any {unit_label}s. Please try again.",
            recoverable=True,
            fallback_action="No report produced",
            details={"total_units": total_units, "unit_label": unit_label}
        )
        return cls(context)


class AnalysisInProgressError(DamageDetectError):
    """Exception raised when an analysis is triggered while another is running."""

    @classmethod
    def already_running(cls, session_id: str) -> "AnalysisInProgressError":
        context = ErrorContext(
            error_type=ErrorType.ANALYSIS_IN_PROGRESS,
            message="An analysis is already in progress for this session",
            recoverable=True,
            details={"session_id": session_id}
        )
        return cls(context)


class ExportError(DamageDetectError):
    """Exception for report export failures."""

    @classmethod
    def render_failed(cls, report_kind: str, error: Exception) -> "ExportError":
        """
        Create error for a PDF build failure.

        Args:
            report_kind: "single" or "combined"
            error: Original exception

        Returns:
            ExportError instance
        """
        context = ErrorContext(
            error_type=ErrorType.EXPORT_FAILED,
            message=f"Could not generate {report_kind} PDF report: {str(error)}",
            recoverable=True,
            fallback_action="Keep on-screen results",
            details={"report_kind": report_kind},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def nothing_to_export(cls) -> "ExportError":
        context = ErrorContext(
            error_type=ErrorType.EXPORT_FAILED,
            message="No analysis results to export",
            recoverable=True
        )
        return cls(context)

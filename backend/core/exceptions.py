"""
Custom Exception Classes with Structured Error Handling
Enables consistent error responses across the API
"""
from typing import Any, Dict, List, Optional
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class AppException(Exception):
    """
    Base application exception.
    All custom exceptions should inherit from this.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AppException):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details={"field": field, **(details or {})}
        )


class DatabaseError(AppException):
    """Raised when a document store operation fails"""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(
            message=f"Database error: {message}",
            status_code=500,
            error_code="DATABASE_ERROR",
            details={"operation": operation}
        )


class SheetsConfigurationError(AppException):
    """Raised when no credential, API key or published export is usable"""

    def __init__(self, message: Optional[str] = None, spreadsheet_id: Optional[str] = None):
        super().__init__(
            message=message or (
                "Google Sheets access not configured. Add service account env vars "
                "or set GOOGLE_SHEETS_API_KEY."
            ),
            status_code=400,
            error_code="SHEETS_NOT_CONFIGURED",
            details={"spreadsheet_id": spreadsheet_id}
        )


class SheetFetchError(AppException):
    """Raised when one tab could not be fetched"""

    def __init__(
        self,
        message: str,
        range_name: Optional[str] = None,
        status: Optional[int] = None,
        strategy: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=502,
            error_code="SHEET_FETCH_ERROR",
            details={"range": range_name, "http_status": status, "strategy": strategy}
        )


class ImportFailedError(AppException):
    """Raised when every tab of an import failed and nothing cached is available"""

    def __init__(self, spreadsheet_id: str, tab_errors: List[Dict[str, Any]]):
        summary = "; ".join(f"{t.get('kind')}: {t.get('error')}" for t in tab_errors)
        super().__init__(
            message=f"Import failed for {spreadsheet_id}: {summary}",
            status_code=502,
            error_code="IMPORT_FAILED",
            details={"spreadsheet_id": spreadsheet_id, "tabs": tab_errors}
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Global exception handler for AppException and subclasses.
    Provides consistent error response format.
    """
    logger.warning(
        f"AppException: {exc.error_code} - {exc.message}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "details": exc.details
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global handler for unhandled exceptions.
    Logs full traceback and returns sanitized response.
    """
    logger.exception(
        f"Unhandled exception: {str(exc)}",
        extra={"path": request.url.path}
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again.",
            "details": {}
        }
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies use the same 400 shape as ValidationError"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or None
    error = ValidationError(
        message=f"Invalid request: {first.get('msg', 'malformed body')}" + (f" ({field})" if field else ""),
        field=field,
        details={"errors": jsonable_encoder(errors)},
    )
    logger.info(f"Rejected request to {request.url.path}: {error.message}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())

from typing import List, Optional

from fastapi import FastAPI, Request, status
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from pydantic import ValidationError as PydanticValidationError
import traceback
from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class BusinessLogicError(Exception):
    """Custom exception for business logic errors."""

    def __init__(self, message: str, error_code: str = "BLOC_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ValidationError(BusinessLogicError):
    """Input rejected by a business rule; carries every problem found."""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
        error_code: str = "VALIDATION_ERROR",
    ):
        super().__init__(message, error_code)
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])


class PreconditionError(BusinessLogicError):
    """A workflow guard did not hold. `guard` names the failed guard."""

    def __init__(self, message: str, guard: str, error_code: str = "PRECONDITION_FAILED"):
        super().__init__(message, error_code)
        self.guard = guard


class NoOpError(BusinessLogicError):
    """The request would not change anything."""

    def __init__(self, message: str = "Nothing to do", error_code: str = "NO_OP"):
        super().__init__(message, error_code)


class NoApprovedDocumentsError(NoOpError):
    def __init__(
        self,
        message: str = "No approved documents available",
        error_code: str = "NO_APPROVED_DOCUMENTS",
    ):
        super().__init__(message, error_code)


class AssemblyFailedError(BusinessLogicError):
    """No selected document could be incorporated into an artifact."""

    def __init__(
        self,
        message: str = "Artifact assembly failed",
        failures: Optional[List[str]] = None,
        error_code: str = "ASSEMBLY_FAILED",
    ):
        super().__init__(message, error_code)
        self.failures = list(failures or [])


class ConcurrentUpdateError(BusinessLogicError):
    """The application changed underneath a read-modify-write cycle."""

    def __init__(
        self,
        message: str = "Application was modified concurrently",
        error_code: str = "CONCURRENT_UPDATE",
    ):
        super().__init__(message, error_code)


class AuthenticationError(Exception):
    """The caller could not be identified."""

    def __init__(
        self, message: str = "Authentication failed", error_code: str = "AUTH_ERROR"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AuthorizationError(Exception):
    """The caller is known but may not do this."""

    def __init__(self, message: str = "Access denied", error_code: str = "AUTHZ_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NotFoundError(Exception):
    """Custom exception for resource not found errors."""

    def __init__(
        self, message: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class StorageError(Exception):
    """Object storage operation failed."""

    def __init__(self, message: str, error_code: str = "STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class DocumentFetchError(StorageError):
    """A stored document could not be retrieved."""

    def __init__(
        self, message: str, locator: str = "", error_code: str = "DOCUMENT_FETCH_FAILED"
    ):
        super().__init__(message, error_code)
        self.locator = locator


class DocumentFetchTimeoutError(DocumentFetchError):
    def __init__(self, message: str, locator: str = ""):
        super().__init__(message, locator, "DOCUMENT_FETCH_TIMEOUT")


class StorageObjectNotFoundError(DocumentFetchError):
    def __init__(self, message: str, locator: str = ""):
        super().__init__(message, locator, "STORAGE_OBJECT_NOT_FOUND")


def setup_error_handlers(app: FastAPI):
    """Setup custom error handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
            meta={"http_status": exc.status_code},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.error(f"Request Validation Error: {exc.errors()}")

        formatted_errors = []
        for error in exc.errors():
            field_path = " -> ".join(str(loc) for loc in error["loc"])
            formatted_errors.append(
                {
                    "field": field_path,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )

        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=formatted_errors,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(PydanticValidationError)
    async def pydantic_validation_exception_handler(
        request: Request, exc: PydanticValidationError
    ):
        logger.error(f"Pydantic Validation Error: {exc.errors()}")

        return ResponseBuilder.error(
            request=request,
            message="Data validation failed",
            error_code="INTERNAL_VALIDATION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"SQLAlchemy Error: {str(exc)}")

        # Don't expose internal database errors to users
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "SQLALCHEMY_ERROR"},
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        logger.warning(f"Validation Error: {exc.message} {exc.errors}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            errors=exc.errors,
            warnings=exc.warnings,
            error_code=exc.error_code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            meta={"error_type": "VALIDATION_ERROR"},
        )

    @app.exception_handler(PreconditionError)
    async def precondition_exception_handler(
        request: Request, exc: PreconditionError
    ):
        logger.warning(f"Precondition Failed ({exc.guard}): {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_409_CONFLICT,
            meta={"error_type": "PRECONDITION_ERROR", "guard": exc.guard},
        )

    @app.exception_handler(ConcurrentUpdateError)
    async def concurrent_update_exception_handler(
        request: Request, exc: ConcurrentUpdateError
    ):
        logger.warning(f"Concurrent Update: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_409_CONFLICT,
            meta={"error_type": "CONCURRENCY_ERROR"},
        )

    @app.exception_handler(AssemblyFailedError)
    async def assembly_failed_exception_handler(
        request: Request, exc: AssemblyFailedError
    ):
        logger.error(f"Assembly Failed: {exc.message} {exc.failures}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            errors=exc.failures,
            error_code=exc.error_code,
            status_code=status.HTTP_502_BAD_GATEWAY,
            meta={"error_type": "ASSEMBLY_ERROR"},
        )

    @app.exception_handler(BusinessLogicError)
    async def business_logic_exception_handler(
        request: Request, exc: BusinessLogicError
    ):
        logger.error(f"Business Logic Error: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            meta={"error_type": "BUSINESS_ERROR"},
        )

    @app.exception_handler(AuthenticationError)
    async def authentication_exception_handler(
        request: Request, exc: AuthenticationError
    ):
        logger.warning(f"Authentication Error: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_401_UNAUTHORIZED,
            meta={"error_type": "AUTHENTICATION_ERROR"},
        )

    @app.exception_handler(AuthorizationError)
    async def authorization_exception_handler(
        request: Request, exc: AuthorizationError
    ):
        logger.warning(f"Authorization Error: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_403_FORBIDDEN,
            meta={"error_type": "AUTHORIZATION_ERROR"},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_exception_handler(request: Request, exc: NotFoundError):
        logger.error(f"Not Found Error: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            meta={"error_type": "NOT_FOUND_ERROR"},
        )

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        logger.error(f"Storage Error: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status.HTTP_502_BAD_GATEWAY,
            meta={"error_type": "STORAGE_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions"""
        logger.error(f"Unhandled Exception: {str(exc)}")
        logger.error(f"Traceback: {traceback.format_exc()}")

        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "INTERNAL_ERROR"},
        )

"""
Sandboxer - Error Handler Middleware
Consistent error response format
"""

import traceback
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sandboxer.core.exceptions import (
    InvalidImageID,
    KillFailure,
    RecordNotFound,
    SandboxerError,
)

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handler middleware.
    
    Catches all unhandled exceptions and returns consistent error responses.
    """
    
    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """
        Process request and handle any exceptions.
        
        Args:
            request: Incoming request
            call_next: Next middleware/handler
            
        Returns:
            Response or error response
        """
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        
        try:
            response = await call_next(request)
        
        except Exception as exc:
            logger.error(
                "Unhandled exception",
                error=str(exc),
                error_type=type(exc).__name__,
                path=request.url.path,
                method=request.method,
                request_id=request_id,
                traceback=traceback.format_exc(),
            )
            
            error_code, status_code, detail = self._classify_error(exc)
            
            return JSONResponse(
                status_code=status_code,
                content={
                    "error": error_code,
                    "detail": detail,
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )
        
        response.headers["X-Request-ID"] = request_id
        return response
    
    def _classify_error(self, exc: Exception) -> tuple[str, int, str]:
        """
        Classify exception and return error details.
        
        Args:
            exc: The exception to classify
            
        Returns:
            Tuple of (error_code, status_code, detail)
        """
        if isinstance(exc, InvalidImageID):
            return exc.code, 400, str(exc)
        
        if isinstance(exc, RecordNotFound):
            return exc.code, 404, str(exc)
        
        if isinstance(exc, KillFailure):
            return exc.code, 500, str(exc)
        
        # Engine or registry errors that escaped a handler
        if isinstance(exc, SandboxerError):
            return exc.code, 502, str(exc)
        
        if isinstance(exc, ValueError):
            return "VALIDATION_ERROR", 400, str(exc)
        
        # Default: internal server error
        return "INTERNAL_ERROR", 500, "An unexpected error occurred"

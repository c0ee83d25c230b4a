"""
Village Map - Error Translation

Maps service-layer errors onto HTTP responses for the routers.
"""
from fastapi import HTTPException, status

from .services.verification.errors import (
    VerificationError, NotFound, InvalidChoice, ConcurrencyConflict, PersistenceFailure,
)

STATUS_BY_ERROR = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidChoice, status.HTTP_400_BAD_REQUEST),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (PersistenceFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(error: Exception) -> HTTPException:
    """Translate a service error into an HTTPException."""
    if isinstance(error, VerificationError):
        for error_type, status_code in STATUS_BY_ERROR:
            if isinstance(error, error_type):
                return HTTPException(status_code=status_code, detail=str(error))
    if isinstance(error, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")

"""
ATS Engine Exceptions
Typed domain errors carrying an HTTP-appropriate status code

File: src/exceptions.py
"""

from typing import Any, Dict, List, Optional

from config.ats_config import ErrorCodes, ERROR_MESSAGES


class AtsError(Exception):
    """Base error of the ATS engine"""

    status_code = 500
    error_code = ErrorCodes.GENERATION_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[List[Dict[str, Any]]] = None
    ):
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.message = message or ERROR_MESSAGES.get(self.error_code, "Error interno")
        self.details = details or []
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidPeriodError(AtsError):
    status_code = 400
    error_code = ErrorCodes.INVALID_PERIOD


class TenantNotFoundError(AtsError):
    status_code = 404
    error_code = ErrorCodes.TENANT_NOT_FOUND


class ReconciliationError(AtsError):
    """Declared totals do not match the computed ones beyond tolerance"""
    status_code = 400
    error_code = ErrorCodes.RECONCILIATION_MISMATCH


class DocumentMappingError(AtsError):
    status_code = 400
    error_code = ErrorCodes.INVALID_DOCUMENT_FIELD


class AtsStorageError(AtsError):
    status_code = 500
    error_code = ErrorCodes.STORAGE_ERROR

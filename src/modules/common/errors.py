"""
Taxonomía de errores del dominio de firmas.

Cada error lleva un ``code`` estable (lo que el cliente interpreta), un
``kind`` (la familia del error) y el código HTTP con que se expone.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    AUTHORIZATION = "AUTHORIZATION"
    CONFLICT = "CONFLICT"
    UPSTREAM_SYNC_FAILURE = "UPSTREAM_SYNC_FAILURE"


class ErrorCode(str, Enum):
    # VALIDATION
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_RUT = "INVALID_RUT"
    INVALID_REQUEST_TYPE = "INVALID_REQUEST_TYPE"
    INVALID_TARGET_TYPE = "INVALID_TARGET_TYPE"
    INVALID_TARGET_STATE = "INVALID_TARGET_STATE"
    NO_WORKERS = "NO_WORKERS"
    DOCUMENT_REQUIRED = "DOCUMENT_REQUIRED"
    # NOT_FOUND
    WORKER_NOT_FOUND = "WORKER_NOT_FOUND"
    SOLICITANTE_NOT_FOUND = "SOLICITANTE_NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    SIGNATURE_NOT_FOUND = "SIGNATURE_NOT_FOUND"
    # AUTHORIZATION
    WRONG_CURRENT_PIN = "WRONG_CURRENT_PIN"
    INVALID_PIN = "INVALID_PIN"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    WORKER_NOT_ENABLED = "WORKER_NOT_ENABLED"
    # CONFLICT
    WORKER_EXISTS = "WORKER_EXISTS"
    PIN_NOT_SET = "PIN_NOT_SET"
    ALREADY_ENABLED = "ALREADY_ENABLED"
    ALREADY_SIGNED = "ALREADY_SIGNED"
    ALREADY_DISPUTED = "ALREADY_DISPUTED"
    NOT_DISPUTED = "NOT_DISPUTED"
    SIGNATURE_REVOKED = "SIGNATURE_REVOKED"
    REQUEST_TERMINAL = "REQUEST_TERMINAL"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    BATCH_ALREADY_PROCESSED = "BATCH_ALREADY_PROCESSED"
    # UPSTREAM
    UPSTREAM_SYNC_FAILURE = "UPSTREAM_SYNC_FAILURE"


class SignatureError(Exception):
    """Error base de dominio; el handler de main.py lo convierte en respuesta JSON."""

    kind = ErrorKind.VALIDATION
    status_code = 400

    def __init__(self, code: ErrorCode, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code.value, "kind": self.kind.value}


class InvalidInputError(SignatureError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class NotFoundError(SignatureError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


# PIN incorrecto -> 401 (reintentar con el PIN correcto); el resto -> 403
_AUTH_STATUS = {
    ErrorCode.WRONG_CURRENT_PIN: 401,
    ErrorCode.INVALID_PIN: 401,
}


class AuthorizationError(SignatureError):
    kind = ErrorKind.AUTHORIZATION
    status_code = 403

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(code, message, _AUTH_STATUS.get(code, 403))


class ConflictError(SignatureError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class UpstreamSyncError(SignatureError):
    kind = ErrorKind.UPSTREAM_SYNC_FAILURE
    status_code = 502

    def __init__(self, message: str):
        super().__init__(ErrorCode.UPSTREAM_SYNC_FAILURE, message)

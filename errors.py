"""
Error taxonomy shared by every endpoint.

Failures reach the caller as {"code": ..., "message": ...}; the HTTP status
is derived from the code.
"""
from typing import Dict

from fastapi import HTTPException


UNAUTHENTICATED = "unauthenticated"
PERMISSION_DENIED = "permission-denied"
INVALID_ARGUMENT = "invalid-argument"
NOT_FOUND = "not-found"
FAILED_PRECONDITION = "failed-precondition"
INTERNAL = "internal"

STATUS_BY_CODE: Dict[str, int] = {
    UNAUTHENTICATED: 401,
    PERMISSION_DENIED: 403,
    INVALID_ARGUMENT: 400,
    NOT_FOUND: 404,
    FAILED_PRECONDITION: 412,
    INTERNAL: 500,
}


class ServiceError(HTTPException):
    def __init__(self, code: str, message: str):
        super().__init__(status_code=STATUS_BY_CODE.get(code, 500), detail=message)
        self.code = code
        self.message = message


def error_payload(code: str, message: str) -> Dict[str, str]:
    return {"code": code, "message": message}

# errors.py — Domain error taxonomy for BoardFlow
# Components raise these; main.py turns them into HTTP responses of the form
#   {"detail": <message>, "error": <code>, "request_id": <id>}
from typing import Optional


class DomainError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str = "", *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        if code is not None:
            self.code = code


class NotFound(DomainError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str = "Resource", entity_id: Optional[str] = None):
        message = f"{entity} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class AccessDenied(DomainError):
    status_code = 403
    code = "access_denied"


class ValidationError(DomainError):
    status_code = 400
    code = "validation_error"


class Conflict(DomainError):
    status_code = 409
    code = "conflict"


class UpstreamFailure(DomainError):
    """External text-generation call failed or returned something unusable"""
    status_code = 502
    code = "upstream_failure"

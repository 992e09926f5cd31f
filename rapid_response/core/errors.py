"""
errors.py — Domain exceptions raised by the service layer.

Services stay free of FastAPI imports and raise these instead; main.py
registers a handler that serialises them the same way HTTPException is
serialised:  { "detail": "..." }
"""


class RapidResponseError(Exception):
    """Base class. Subclasses pin the HTTP status the API answers with."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(RapidResponseError):
    """Document absent, or not owned by the caller."""

    status_code = 404


class ForbiddenError(RapidResponseError):
    """Authenticated, but the role or ownership does not allow the action."""

    status_code = 403


class ConflictError(RapidResponseError):
    """A concurrent writer kept winning the version check."""

    status_code = 409

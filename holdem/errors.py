"""Errors surfaced to callers of the table service.

Every error carries a stable ``code`` for clients plus a readable message.
"""

from __future__ import annotations


class TableError(Exception):
    kind = "error"

    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg

    def to_payload(self) -> dict:
        return {"kind": self.kind, "code": self.code, "msg": self.msg}


class AuthorizationError(TableError):
    """Acting for a seat the caller does not occupy."""

    kind = "authorization"


class PreconditionError(TableError, RuntimeError):
    """The table is in the wrong state for the request."""

    kind = "precondition"


class ValidationError(TableError, ValueError):
    """Missing or malformed input."""

    kind = "validation"


class ResourceError(TableError):
    """Unknown table or seat, or a seat that is already taken."""

    kind = "resource"


class StaleStateError(PreconditionError):
    """A concurrent transition changed what the caller read before committing."""

    def __init__(self, msg: str = "Table changed since it was read") -> None:
        super().__init__("STALE_STATE", msg)

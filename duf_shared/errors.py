# duf-serve/duf_shared/errors.py

from fastapi import HTTPException


class Forbidden(HTTPException):
    """Path escapes the root, read-only violation, or a blocked upload parent."""

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=403, detail=detail)


class Unauthorized(HTTPException):
    """Missing or wrong credential; carries the Basic challenge."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=401, detail=detail, headers={"WWW-Authenticate": "Basic"})


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not Found"):
        super().__init__(status_code=404, detail=detail)

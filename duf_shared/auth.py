# duf-serve/duf_shared/auth.py

import base64
import binascii
import hmac
from typing import Optional

from fastapi import Request
from fastapi.security.utils import get_authorization_scheme_param

from duf_shared.config import Settings
from duf_shared.errors import Unauthorized
from duf_shared.logging_config import setup_logger

logger = setup_logger(__name__)


def decode_basic(authorization: str) -> Optional[bytes]:
    """Return the decoded `user:pass` bytes of a Basic header, or None if malformed."""
    scheme, param = get_authorization_scheme_param(authorization)
    if scheme.lower() != "basic" or not param:
        return None
    try:
        return base64.b64decode(param, validate=True)
    except (binascii.Error, ValueError):
        return None


def check_auth(settings: Settings, authorization: Optional[str], method: str) -> bool:
    if settings.auth is None:
        return True
    if authorization is None:
        return settings.no_auth_read and method == "GET"
    credential = decode_basic(authorization)
    if credential is None:
        return False
    return hmac.compare_digest(credential, settings.auth.encode("utf-8"))


def require_auth(request: Request) -> None:
    """FastAPI dependency guarding every route before the filesystem is touched."""
    settings: Settings = request.app.state.settings
    if not check_auth(settings, request.headers.get("Authorization"), request.method):
        logger.warning(f"Rejected {request.method} {request.url.path}: missing or invalid credentials")
        raise Unauthorized()

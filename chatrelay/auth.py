"""
Optional HTTP Basic gate for export and operator routes.
"""
import secrets
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from chatrelay.config import Settings
from chatrelay.errors import Unauthorized

basic_scheme = HTTPBasic(auto_error=False)


def check_credentials(settings: Settings, credentials: Optional[HTTPBasicCredentials]) -> None:
    """Raise Unauthorized unless the gate is off or the credentials match."""
    if not settings.auth_enabled:
        return
    if credentials is None:
        raise Unauthorized()
    user_ok = secrets.compare_digest(
        credentials.username.encode(), settings.basic_auth_user.encode()
    )
    pass_ok = secrets.compare_digest(
        credentials.password.encode(), settings.basic_auth_pass.encode()
    )
    if not (user_ok and pass_ok):
        raise Unauthorized("Invalid credentials")


def require_basic_auth(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_scheme),
) -> None:
    check_credentials(request.app.state.settings, credentials)

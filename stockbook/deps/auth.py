from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.config import settings
from ..core.security import decode_token
from ..middlewares import principal_ctx_var


class AuthContext:
    def __init__(self, *, subject: str, scheme: str) -> None:
        self.subject = subject
        self.scheme = scheme


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


async def require_api_access(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """Accept the configured API key or a bearer access token.

    With no API key configured and no Authorization header the API is open,
    which is how local development runs.
    """

    api_key = settings.API_KEY
    provided_key = (x_api_key or "").strip()
    if api_key and provided_key and hmac.compare_digest(api_key, provided_key):
        _set_principal(request, "api-key")
        return AuthContext(subject="api-key", scheme="api_key")

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                payload = decode_token(credentials, verify_type="access")
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
            subject = f"jwt:{payload.sub}"
            _set_principal(request, subject)
            return AuthContext(subject=subject, scheme="jwt")

    if not api_key and not authorization:
        _set_principal(request, "anonymous")
        return AuthContext(subject="anonymous", scheme="open")

    detail = "Invalid API key" if provided_key else "Authorization required"
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

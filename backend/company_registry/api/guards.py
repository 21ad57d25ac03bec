import secrets

from fastapi import Depends, Request, Security
from fastapi.security.api_key import APIKeyHeader

from ..core.errors import Unauthorized, UnsupportedMediaType
from ..services.registry import CompanyRegistry

admin_token_header = APIKeyHeader(name="admin_token", auto_error=False)


def get_registry(request: Request) -> CompanyRegistry:
    return request.app.state.registry


def verify_admin_token(
    request: Request,
    admin_token: str | None = Security(admin_token_header),
) -> None:
    """
    Header-based admin authentication.

    A missing ADMIN_TOKEN setting is treated as misconfiguration: every admin
    call is rejected rather than let through.
    """
    expected = request.app.state.settings.ADMIN_TOKEN
    if not expected or not admin_token:
        raise Unauthorized()
    if not secrets.compare_digest(admin_token.encode(), expected.encode()):
        raise Unauthorized()


def _check_content_type(request: Request) -> None:
    content_type = request.headers.get("content-type") or ""
    # Media type comparison is case-insensitive; parameters such as charset are ignored
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type != "application/json":
        raise UnsupportedMediaType()


def require_json(request: Request) -> None:
    _check_content_type(request)


def require_admin_json(request: Request, _: None = Depends(verify_admin_token)) -> None:
    # The token check always runs first
    _check_content_type(request)

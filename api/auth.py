# api/auth.py
import secrets

from fastapi import Depends, Request, Security
from fastapi.security.api_key import APIKeyHeader

from .errors import Unauthenticated

APIKEY_NAME = "X-API-Key"
USER_ID_NAME = "X-User-Id"
api_key_header = APIKeyHeader(name=APIKEY_NAME, auto_error=False)
user_id_header = APIKeyHeader(name=USER_ID_NAME, auto_error=False)


def get_services(request: Request):
    """The Services container created by the app lifespan."""
    return request.app.state.services


async def get_caller(
    services=Depends(get_services),
    api_key: str = Security(api_key_header),
    user_id: str = Security(user_id_header),
):
    """
    Authenticate the request and return the calling user's id.

    The identity provider sits in front of this service: it presents the
    shared API key and forwards the verified user id in X-User-Id. Any
    missing or wrong credential is rejected as unauthenticated.
    """
    expected = services.settings.api_key
    if not api_key:
        raise Unauthenticated("Missing API Key")
    if not expected or not secrets.compare_digest(api_key, expected):
        raise Unauthenticated("Invalid API Key")
    if not user_id or not user_id.strip():
        raise Unauthenticated("User must be authenticated")
    return user_id.strip()

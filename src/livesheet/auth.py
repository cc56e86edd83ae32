"""Credential shapes accepted by livesheet.

Three kinds of credentials are supported and the auth mode is always
derived from the shape of the object, never stored separately:

1. A header provider - an object with a ``get_request_headers()`` method,
   or a plain callable, returning request headers (sync or async). This
   covers google-auth credentials wrapped by the caller.
2. ``AccessTokenAuth`` - a raw OAuth2 bearer token.
3. ``ApiKeyAuth`` - an API key, which only gives read access to public docs.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from livesheet.exceptions import InvalidAuthError


class AuthMode(str, Enum):
    """How requests are authenticated."""

    GOOGLE_AUTH_CLIENT = "google_auth"
    RAW_ACCESS_TOKEN = "raw_access_token"
    API_KEY = "api_key"


@runtime_checkable
class HeaderProvider(Protocol):
    """Anything that can produce auth headers for a request."""

    def get_request_headers(
        self,
    ) -> Mapping[str, str] | Awaitable[Mapping[str, str]]: ...


@dataclass(frozen=True)
class AccessTokenAuth:
    """Raw OAuth2 access token, sent as a bearer token."""

    token: str

    def __repr__(self) -> str:
        return "AccessTokenAuth(token='***')"


@dataclass(frozen=True)
class ApiKeyAuth:
    """API key, sent as the ``key`` query parameter. Read-only access."""

    api_key: str

    def __repr__(self) -> str:
        return "ApiKeyAuth(api_key='***')"


HeaderCallable = Callable[[], Mapping[str, str] | Awaitable[Mapping[str, str]]]
Auth = HeaderProvider | HeaderCallable | AccessTokenAuth | ApiKeyAuth


def get_auth_mode(auth: Auth) -> AuthMode:
    """Derive the auth mode from the credential object.

    Raises:
        InvalidAuthError: If the object matches none of the supported shapes
    """
    if isinstance(auth, AccessTokenAuth):
        if auth.token:
            return AuthMode.RAW_ACCESS_TOKEN
        raise InvalidAuthError("Invalid auth - access token is empty")
    if isinstance(auth, ApiKeyAuth):
        if auth.api_key:
            return AuthMode.API_KEY
        raise InvalidAuthError("Invalid auth - API key is empty")
    if isinstance(auth, HeaderProvider) or callable(auth):
        return AuthMode.GOOGLE_AUTH_CLIENT
    raise InvalidAuthError(
        f"Invalid auth - expected a header provider, AccessTokenAuth or "
        f"ApiKeyAuth, got {type(auth).__name__}"
    )


async def get_request_auth_config(
    auth: Auth,
) -> tuple[dict[str, str], dict[str, str]]:
    """Resolve the headers and query params that authenticate a request.

    Returns:
        Tuple of (headers, params)
    """
    mode = get_auth_mode(auth)

    if mode is AuthMode.API_KEY:
        return {}, {"key": auth.api_key}  # type: ignore[union-attr]

    if mode is AuthMode.RAW_ACCESS_TOKEN:
        return {"Authorization": f"Bearer {auth.token}"}, {}  # type: ignore[union-attr]

    if isinstance(auth, HeaderProvider):
        result: Any = auth.get_request_headers()
    else:
        result = auth()  # type: ignore[operator]
    if inspect.isawaitable(result):
        result = await result
    return {str(k): str(v) for k, v in dict(result).items()}, {}

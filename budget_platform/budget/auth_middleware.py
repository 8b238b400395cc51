"""Caller identity for the budget API.

With ``JWT_SECRET`` set, callers present an HS256 Bearer token whose ``sub``
is the user id and whose ``groups`` (or ``cognito:groups``) claim lists the
user's groups. Without it the API sits behind a gateway that has already
authenticated the caller and forwards ``X-User-Id`` / ``X-User-Groups``.

Either way handlers read ``request["user_id"]`` and ``request["groups"]``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, NamedTuple

import jwt
from aiohttp import web

USER_HEADER = "X-User-Id"
GROUPS_HEADER = "X-User-Groups"
GROUP_CLAIMS = ("groups", "cognito:groups")


class Identity(NamedTuple):
    user_id: str
    groups: list[str]


class AuthError(Exception):
    """Raised by an identity resolver; the message becomes the 401 body."""


IdentityResolver = Callable[[web.Request], Identity]


def parse_groups(claim: Any) -> list[str]:
    """Accept a list of groups or a comma-separated string."""
    if isinstance(claim, str):
        claim = claim.split(",")
    if not isinstance(claim, (list, tuple)):
        return []
    return [str(g).strip() for g in claim if str(g).strip()]


def bearer_identity(jwt_secret: str) -> IdentityResolver:
    def resolve(request: web.Request) -> Identity:
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme != "Bearer" or not token:
            raise AuthError("Missing or invalid Authorization header")
        try:
            claims = jwt.decode(token, jwt_secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise AuthError("Token has expired") from None
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token") from None
        if not claims.get("sub"):
            raise AuthError("Unauthorized")
        groups = next((claims[c] for c in GROUP_CLAIMS if c in claims), None)
        return Identity(str(claims["sub"]), parse_groups(groups))

    return resolve


def gateway_identity(request: web.Request) -> Identity:
    user_id = request.headers.get(USER_HEADER, "").strip()
    if not user_id:
        raise AuthError("Unauthorized")
    return Identity(user_id, parse_groups(request.headers.get(GROUPS_HEADER, "")))


def identity_middleware(
    resolve: IdentityResolver, public_paths: set[str] | None = None
) -> web.middleware:
    exempt = frozenset(public_paths or ())

    @web.middleware
    async def middleware(request: web.Request, handler):
        if request.path not in exempt:
            try:
                request["user_id"], request["groups"] = resolve(request)
            except AuthError as exc:
                return web.json_response({"message": str(exc)}, status=401)
        return await handler(request)

    return middleware


def create_auth_middleware(jwt_secret: str, public_paths: set[str] | None = None) -> web.middleware:
    return identity_middleware(bearer_identity(jwt_secret), public_paths)


def create_gateway_identity_middleware(public_paths: set[str] | None = None) -> web.middleware:
    return identity_middleware(gateway_identity, public_paths)


def encode_token(
    user_id: str,
    secret: str,
    groups: list[str] | None = None,
    expires_in: int = 1800,
) -> str:
    """Sign an HS256 access token for *user_id*, valid for *expires_in* seconds."""
    issued = int(time.time())
    claims = {"sub": user_id, "groups": list(groups or []), "iat": issued, "exp": issued + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")

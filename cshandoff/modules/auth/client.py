"""
Supabase Auth (GoTrue) client: magic link sign-in, OTP verification,
access-token lookup and sign-out over plain HTTP.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

import httpx

from cshandoff.errors import BackendError, Unauthenticated
from cshandoff.models.profile import Actor

logger = logging.getLogger(__name__)


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str | None
    expires_in: int | None
    actor: Actor


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"Auth request failed ({resp.status_code})"
    return (
        data.get("msg")
        or data.get("error_description")
        or data.get("message")
        or data.get("error")
        or f"Auth request failed ({resp.status_code})"
    )


def _actor_from_user(user: dict, access_token: str) -> Actor:
    return Actor(user_id=UUID(user["id"]), email=user.get("email"), access_token=access_token)


class AuthClient:
    def __init__(self, base_url: str, anon_key: str, http: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/") + "/auth/v1"
        self.anon_key = anon_key
        self.http = http

    def _headers(self, access_token: str | None = None) -> dict:
        headers = {"apikey": self.anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.http.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            logger.error("Auth request %s %s failed: %s", method, path, e)
            raise BackendError(f"Sign-in service unavailable: {e}") from e

    async def send_magic_link(self, email: str, redirect_to: str | None = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        resp = await self._request(
            "POST",
            "/otp",
            params=params,
            json={"email": email, "create_user": True},
            headers=self._headers(),
        )
        if resp.status_code >= 400:
            raise BackendError(_error_message(resp))
        logger.info("Magic link requested for %s", email)

    async def verify_otp(self, token_hash: str, otp_type: str = "magiclink") -> AuthSession:
        resp = await self._request(
            "POST",
            "/verify",
            json={"type": otp_type, "token_hash": token_hash},
            headers=self._headers(),
        )
        if resp.status_code >= 400:
            raise Unauthenticated(_error_message(resp))
        data = resp.json()
        access_token = data["access_token"]
        return AuthSession(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            actor=_actor_from_user(data["user"], access_token),
        )

    async def get_user(self, access_token: str) -> Actor:
        """Resolve an access token to the signed-in actor."""
        resp = await self._request("GET", "/user", headers=self._headers(access_token))
        if resp.status_code >= 400:
            raise Unauthenticated("Invalid session")
        return _actor_from_user(resp.json(), access_token)

    async def sign_out(self, access_token: str) -> None:
        try:
            resp = await self._request("POST", "/logout", headers=self._headers(access_token))
        except BackendError as e:
            logger.warning("Sign-out failed: %s", e.message)
            return
        if resp.status_code >= 400:
            logger.warning("Sign-out failed: %s", _error_message(resp))

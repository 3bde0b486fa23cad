"""
Client-side view of the identity provider.

Holds the current identity (or None for a guest) and tells subscribers
whenever it changes. The sign-in/sign-up calls go to the backend's
/api/auth routes; everything else is local state.
"""
import inspect
from typing import Awaitable, Callable, Union

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from chatbot.exceptions import IdentityError

IdentityCallback = Callable[["Identity | None"], Union[None, Awaitable[None]]]


class Identity(BaseModel):
    user_id: str
    username: str
    access_token: str


class IdentityProvider:
    def __init__(self, base_url: str, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._identity: Identity | None = None
        self._callbacks: list[IdentityCallback] = []

    def current_identity(self) -> Identity | None:
        return self._identity

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Subscribe to identity changes. Returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def sign_in(self, username: str, password: str) -> Identity:
        token = await self._request_token("/api/auth/login", username, password)
        return await self.restore(token)

    async def sign_up(self, username: str, password: str) -> Identity:
        token = await self._request_token("/api/auth/register", username, password)
        return await self.restore(token)

    async def restore(self, access_token: str) -> Identity:
        """Resolve an existing access token into the current identity."""
        try:
            async with self._client() as client:
                resp = await client.get(
                    "/api/auth/me",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                resp.raise_for_status()
                user = resp.json()
            identity = Identity(
                user_id=str(user["id"]),
                username=user["username"],
                access_token=access_token,
            )
        except httpx.HTTPError as e:
            raise IdentityError(f"Could not resolve identity: {e}") from e
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise IdentityError("Identity response was not a user record") from e

        await self._set(identity)
        logger.info("Signed in as {!r}", identity.username)
        return identity

    async def sign_out(self) -> None:
        if self._identity is not None:
            logger.info("Signed out {!r}", self._identity.username)
        await self._set(None)

    async def _request_token(self, path: str, username: str, password: str) -> str:
        try:
            async with self._client() as client:
                resp = await client.post(path, json={"username": username, "password": password})
                resp.raise_for_status()
                return resp.json()["access_token"]
        except httpx.HTTPStatusError as e:
            raise IdentityError(
                f"{path} failed ({e.response.status_code}): {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise IdentityError(f"{path} failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise IdentityError(f"{path} returned no access token") from e

    async def _set(self, identity: Identity | None) -> None:
        self._identity = identity
        for callback in list(self._callbacks):
            result = callback(identity)
            if inspect.isawaitable(result):
                await result

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=10.0, transport=self._transport)

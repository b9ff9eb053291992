"""
httpx authentication backed by a TokenManager.
"""

from typing import TYPE_CHECKING, AsyncGenerator, Generator

import httpx

if TYPE_CHECKING:
    from brale_core.auth.token_manager import TokenManager


class BearerTokenAuth(httpx.Auth):
    """
    Adds ``Authorization: Bearer <token>`` to every request.

    On a 401 response the cached token is cleared and the request is sent
    once more with a freshly exchanged token.
    """

    def __init__(self, token_manager: "TokenManager"):
        self.token_manager = token_manager

    def sync_auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("BearerTokenAuth only supports httpx.AsyncClient")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self.token_manager.get_access_token()
        request.headers["Authorization"] = f"Bearer {token}"
        response = yield request

        if response.status_code == 401:
            await self.token_manager.clear_token()
            token = await self.token_manager.get_access_token()
            request.headers["Authorization"] = f"Bearer {token}"
            yield request

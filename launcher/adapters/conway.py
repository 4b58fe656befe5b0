"""
Conway compute-credit balance over HTTP.

The agent pays for its own inference in credits metered by the compute
provider. This client only reads the balance; credits are added through
the Bridge collaborator's top-up step.

Requires CONWAY_API_URL and CONWAY_API_KEY in .env.
"""

import logging
from typing import Optional

import aiohttp

from launcher.collaborators import CreditSource
from launcher.errors import CollaboratorFailure

logger = logging.getLogger("launcher.adapter.conway")

BALANCE_PATH = "/v1/credits/balance"


class ConwayCreditsClient(CreditSource):

    def __init__(self, api_url: str, api_key: str, timeout_seconds: float = 15.0):
        self.api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        return self._session

    async def get_credit_balance(self) -> float:
        session = await self._get_session()
        try:
            async with session.get(f"{self.api_url}{BALANCE_PATH}") as resp:
                if resp.status != 200:
                    body = (await resp.text())[:200]
                    raise CollaboratorFailure("credits", f"credit balance HTTP {resp.status}: {body}")
                data = await resp.json()
        except aiohttp.ClientError as e:
            raise CollaboratorFailure("credits", f"credit balance request failed: {e}") from e

        try:
            return float(data.get("balance", 0.0))
        except (TypeError, ValueError, AttributeError) as e:
            raise CollaboratorFailure("credits", f"unreadable credit balance payload: {data!r}") from e

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

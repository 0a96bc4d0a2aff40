"""HTTP client for the score API.

Error responses are turned back into the matching ScoreLedgerError
subclass, so remote callers can match on the same exception types as
in-process ones.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from scoreledger.errors import ERRORS_BY_KIND
from scoreledger.ledger.models import PlayerScoreState, SubmissionResult


class ScoreLedgerClient:
    """Async client for ScoreHTTPServer."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ScoreLedgerClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        kind = body.get("error", "") if isinstance(body, dict) else ""
        error_cls = ERRORS_BY_KIND.get(kind)
        if error_cls is not None:
            raise error_cls(body.get("detail", ""))
        raise ConnectionError(f"request failed: {resp.status_code} {resp.text}")

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        resp = await self._client.post(f"{self.base_url}{path}", json=payload)
        self._raise_for_error(resp)
        return resp.json()

    async def _get(self, path: str) -> Any:
        resp = await self._client.get(f"{self.base_url}{path}")
        self._raise_for_error(resp)
        return resp.json()

    # -- Submissions --

    async def submit_score(
        self, message: Mapping[str, Any], signature: str,
    ) -> SubmissionResult:
        """Submit a flat message (``{player, <scores>, nonce}``) with its signature."""
        data = await self._post("/scores", {"message": dict(message), "signature": signature})
        return SubmissionResult.model_validate(data)

    async def is_message_encoding_valid(
        self, message: Mapping[str, Any], digest: str,
    ) -> bool:
        data = await self._post("/scores/encoding", {"message": dict(message), "digest": digest})
        return bool(data["valid"])

    async def get_signer(self, message: Mapping[str, Any], signature: str) -> str:
        data = await self._post("/scores/signer", {"message": dict(message), "signature": signature})
        return data["signer"]

    # -- Reads / admin --

    async def get_player(self, address: str) -> PlayerScoreState:
        return PlayerScoreState.model_validate(await self._get(f"/players/{address}"))

    async def get_milestone_score(self, index: int) -> int:
        data = await self._get(f"/milestones/{index}")
        return int(data["score"])

    async def get_authority(self) -> dict[str, str | None]:
        return await self._get("/authority")

    async def set_authority(self, caller: str, authority: str) -> str:
        data = await self._post("/authority", {"caller": caller, "authority": authority})
        return data["authority"]


__all__ = ["ScoreLedgerClient"]

"""JSON HTTP API over a ScoreService.

Routes:
  POST /scores              - submit {message, signature}
  POST /scores/encoding     - check {message, digest} against our encoding
  POST /scores/signer       - recover signer of {message, signature}
  GET  /players/{address}   - player score state
  GET  /milestones/{index}  - milestone threshold
  GET  /authority           - current backend signer and owner
  POST /authority           - rotate backend signer (owner, local peers only)
"""

from __future__ import annotations

from typing import Any

import bittensor as bt
from aiohttp import web

from scoreledger.errors import (
    AlreadyInitialized,
    InvalidMessage,
    InvalidSignatureFormat,
    InvalidSigner,
    NonceAlreadyUsed,
    ScoreBelowThreshold,
    ScoreLedgerError,
    ScoreNotHigherOrEqual,
    ScoreOverflow,
    StateConflict,
    Unauthorized,
)
from scoreledger.protocol.messages import ScoreMessage, checksum_address
from scoreledger.service import ScoreService

STATUS_BY_ERROR: dict[type[ScoreLedgerError], int] = {
    InvalidMessage: 400,
    InvalidSignatureFormat: 401,
    InvalidSigner: 401,
    Unauthorized: 403,
    NonceAlreadyUsed: 409,
    AlreadyInitialized: 409,
    StateConflict: 409,
    ScoreNotHigherOrEqual: 422,
    ScoreBelowThreshold: 422,
    ScoreOverflow: 422,
}

LOCAL_PEERS = ("127.0.0.1", "::1", "localhost")


def _error(kind: str, status: int, detail: str = "") -> web.Response:
    body: dict[str, Any] = {"error": kind}
    if detail:
        body["detail"] = detail
    return web.json_response(body, status=status)


def _ledger_error(e: ScoreLedgerError) -> web.Response:
    return _error(e.kind, STATUS_BY_ERROR.get(type(e), 400), e.detail)


class ScoreHTTPServer:
    """Lightweight async HTTP server for score submissions."""

    def __init__(
        self,
        service: ScoreService,
        host: str = "127.0.0.1",
        port: int = 8300,
    ):
        self.service = service
        self.host = host
        self.port = port
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/scores", self._handle_submit)
        app.router.add_post("/scores/encoding", self._handle_encoding)
        app.router.add_post("/scores/signer", self._handle_signer)
        app.router.add_get("/players/{address}", self._handle_player)
        app.router.add_get("/milestones/{index}", self._handle_milestone)
        app.router.add_get("/authority", self._handle_get_authority)
        app.router.add_post("/authority", self._handle_set_authority)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        bt.logging.info({"score_http": {"status": "started", "port": self.port, "variant": self.service.schema.key}})

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            bt.logging.info({"score_http": "stopped"})

    # -- Body parsing --

    async def _read_body(self, request: web.Request, *keys: str) -> dict[str, Any]:
        try:
            body = await request.json()
        except ValueError as e:
            raise InvalidMessage(f"invalid json: {e}") from e
        if not isinstance(body, dict):
            raise InvalidMessage("body must be a JSON object")
        missing = [k for k in keys if k not in body]
        if missing:
            raise InvalidMessage(f"missing keys: {missing}")
        return body

    def _message(self, body: dict[str, Any]) -> ScoreMessage:
        raw = body["message"]
        if not isinstance(raw, dict):
            raise InvalidMessage("message must be a JSON object")
        return ScoreMessage.from_fields(self.service.schema, raw)

    # -- Submission routes --

    async def _handle_submit(self, request: web.Request) -> web.Response:
        try:
            body = await self._read_body(request, "message", "signature")
            message = self._message(body)
            result = self.service.submit_score(message, body["signature"])
        except ScoreLedgerError as e:
            bt.logging.debug({"score_request": {"endpoint": "scores", "status": STATUS_BY_ERROR.get(type(e), 400), "error": e.kind}})
            return _ledger_error(e)
        return web.json_response(result.model_dump(mode="json"))

    async def _handle_encoding(self, request: web.Request) -> web.Response:
        try:
            body = await self._read_body(request, "message", "digest")
            message = self._message(body)
        except ScoreLedgerError as e:
            return _ledger_error(e)
        valid = self.service.is_message_encoding_valid(message, body["digest"])
        return web.json_response({"valid": valid})

    async def _handle_signer(self, request: web.Request) -> web.Response:
        try:
            body = await self._read_body(request, "message", "signature")
            message = self._message(body)
            signer = self.service.get_signer(message, body["signature"])
        except ScoreLedgerError as e:
            return _ledger_error(e)
        return web.json_response({"signer": signer})

    # -- Read routes --

    async def _handle_player(self, request: web.Request) -> web.Response:
        try:
            address = checksum_address(request.match_info["address"])
        except ValueError:
            return _error("invalid_address", 400)
        state = self.service.get_player(address)
        return web.json_response(state.model_dump(mode="json"))

    async def _handle_milestone(self, request: web.Request) -> web.Response:
        try:
            index = int(request.match_info["index"])
            score = self.service.get_milestone_score(index)
        except ValueError:
            return _error("invalid_index", 400)
        return web.json_response({"index": index, "score": score})

    async def _handle_get_authority(self, request: web.Request) -> web.Response:
        return web.json_response({
            "authority": self.service.authority,
            "owner": self.service.owner,
        })

    async def _handle_set_authority(self, request: web.Request) -> web.Response:
        """Rotate the backend signer (owner check plus local-only access)."""
        peer = request.remote
        if peer not in LOCAL_PEERS:
            bt.logging.warning({"score_request": {"endpoint": "authority", "status": 403, "peer": peer}})
            return _error("forbidden", 403)

        try:
            body = await self._read_body(request, "caller", "authority")
            self.service.set_authority(body["caller"], body["authority"])
        except ScoreLedgerError as e:
            return _ledger_error(e)
        except ValueError as e:
            return _error("invalid_address", 400, str(e))

        return web.json_response({"authority": self.service.authority})


__all__ = ["STATUS_BY_ERROR", "ScoreHTTPServer"]

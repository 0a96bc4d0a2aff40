"""Score ledger server entrypoint.

Verifies backend-signed score messages and keeps per-player score and
milestone state behind a small JSON API.
"""

import argparse
import asyncio
import signal
import sys

import bittensor as bt

from scoreledger.config import add_args, load_settings
from scoreledger.server.http_server import ScoreHTTPServer
from scoreledger.service import ScoreService
from scoreledger.store import open_store


def main() -> None:
    parser = argparse.ArgumentParser(description="Score ledger server")
    bt.logging.add_args(parser)
    add_args(parser)
    args = parser.parse_args()

    settings = load_settings(args)
    bt.logging.info({"score_ledger": "starting"})

    store = open_store(settings.database_url)
    domain = settings.domain()
    service = ScoreService(schema=settings.message_schema, domain=domain, store=store)

    if not store.get_authority().initialized:
        if not settings.owner or not settings.backend_signer:
            bt.logging.error({"score_ledger": {"error": "missing_authority", "detail": "SCORELEDGER__OWNER and SCORELEDGER__BACKEND_SIGNER are required on first start"}})
            sys.exit(1)
        service.initialize(owner=settings.owner, backend_signer=settings.backend_signer)

    bt.logging.info({
        "score_ledger_config": {
            "variant": settings.variant,
            "domain": domain.as_eip712(),
            "type": settings.message_schema.type_string,
            "authority": service.authority,
            "owner": service.owner,
            "store": type(store).__name__,
            "port": settings.port,
        }
    })

    server = ScoreHTTPServer(service=service, host=settings.host, port=settings.port)
    loop = asyncio.new_event_loop()
    stop_event = asyncio.Event()

    def _signal_handler(sig, frame):
        bt.logging.info({"score_ledger": "shutdown_signal_received"})
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    async def _serve() -> None:
        await server.start()
        await stop_event.wait()

    try:
        loop.run_until_complete(_serve())
    except KeyboardInterrupt:
        bt.logging.info({"score_ledger": "keyboard_interrupt"})
    finally:
        loop.run_until_complete(server.stop())
        loop.close()
        bt.logging.info({"score_ledger": "stopped"})


if __name__ == "__main__":
    main()

from .http_client import ScoreLedgerClient
from .http_server import ScoreHTTPServer

__all__ = ["ScoreHTTPServer", "ScoreLedgerClient"]

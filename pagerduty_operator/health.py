"""Liveness and readiness probe endpoints."""

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Tuple

logger = logging.getLogger(__name__)


def parse_bind_address(address: str) -> Tuple[str, int]:
    """Split "host:port" (host optional, e.g. ":8081") into its parts."""
    host, _, port = address.rpartition(":")
    return host, int(port)


def start_health_server(address: str, ready: Callable[[], bool]) -> ThreadingHTTPServer:
    """
    Serve /healthz (always ok) and /readyz (ok once ready() is true) on a
    daemon thread.
    """

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path == "/healthz":
                ok = True
            elif self.path == "/readyz":
                ok = ready()
            else:
                self.send_error(404)
                return
            body = b"ok" if ok else b"not ready"
            self.send_response(200 if ok else 503)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            logger.debug(format % args)

    server = ThreadingHTTPServer(parse_bind_address(address), Handler)
    threading.Thread(target=server.serve_forever, name="health-probes", daemon=True).start()
    logger.info(f"Health probes listening on {address}")
    return server

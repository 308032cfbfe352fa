"""HTTP server for agent-registry using stdlib http.server.

Routes:
    GET    /health                         — health check
    GET    /agents/{id}                    — look up an agent by id
    GET    /agents/by-address/{address}    — look up an agent by owner address
    GET    /agents?endpoint=...            — look up an agent by service endpoint
    POST   /agents                         — direct registration
    POST   /agents/delegated               — delegated (relayed) registration
    POST   /agents/{address}/endpoint      — replace an agent's service endpoint
    POST   /did/validate                   — diagnose a DID against an address

Usage:
    python -m agent_registry.server.app --port 8080
    python -m agent_registry.server.app --config registry.toml --log-level DEBUG
"""
from __future__ import annotations

import argparse
import json
import logging
import re
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer

from agent_registry.server import routes

logger = logging.getLogger(__name__)

_AGENT_ID_PATTERN = re.compile(r"^/agents/(\d+)$")
_AGENT_ADDRESS_PATTERN = re.compile(r"^/agents/by-address/([^/]+)$")
_ENDPOINT_UPDATE_PATTERN = re.compile(r"^/agents/([^/]+)/endpoint$")


class AgentRegistryHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the agent-registry server.

    All request bodies and responses use JSON.
    """

    def log_message(self, format: str, *args: object) -> None:
        """Override to route access logs through the Python logging system."""
        logger.debug(format, *args)

    # ── GET ───────────────────────────────────────────────────────────────────

    def do_GET(self) -> None:
        """Handle all GET requests by routing on the URL path."""
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")
        params = urllib.parse.parse_qs(parsed.query)

        if path == "/health":
            status, data = routes.handle_health()
        elif path == "/agents":
            status, data = routes.handle_get_agent_by_endpoint(
                self._first_param(params, "endpoint")
            )
        elif match := _AGENT_ID_PATTERN.match(path):
            status, data = routes.handle_get_agent_by_id(match.group(1))
        elif match := _AGENT_ADDRESS_PATTERN.match(path):
            status, data = routes.handle_get_agent_by_address(
                urllib.parse.unquote(match.group(1))
            )
        else:
            status, data = 404, {"error": "Not found", "detail": f"No route for GET {path}"}
        self._send_json(status, data)

    # ── POST ──────────────────────────────────────────────────────────────────

    def do_POST(self) -> None:
        """Handle all POST requests by routing on the URL path."""
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")

        body = self._read_json_body()
        if body is None:
            return

        if path == "/agents":
            status, data = routes.handle_register_direct(body)
        elif path == "/agents/delegated":
            status, data = routes.handle_register_delegated(body)
        elif path == "/did/validate":
            status, data = routes.handle_validate_did(body)
        elif match := _ENDPOINT_UPDATE_PATTERN.match(path):
            status, data = routes.handle_update_endpoint(
                urllib.parse.unquote(match.group(1)), body
            )
        else:
            status, data = 404, {"error": "Not found", "detail": f"No route for POST {path}"}
        self._send_json(status, data)

    # ── DELETE ────────────────────────────────────────────────────────────────

    def do_DELETE(self) -> None:
        """Records are never deleted."""
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")
        self._send_json(
            405,
            {"error": "Method not allowed", "detail": f"DELETE not supported on {path}"},
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _send_json(self, status: int, data: dict[str, object]) -> None:
        """Serialize *data* to JSON and send an HTTP response with *status*."""
        body = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json_body(self) -> dict[str, object] | None:
        """Read and parse the JSON request body.

        Returns None (and sends a 400 error response) if parsing fails.
        """
        content_length = int(self.headers.get("Content-Length", 0))
        if content_length == 0:
            return {}

        raw = self.rfile.read(content_length)
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            self._send_json(400, {"error": "Invalid JSON", "detail": str(exc)})
            return None
        if not isinstance(parsed, dict):
            self._send_json(400, {"error": "Invalid JSON", "detail": "Body must be an object."})
            return None
        return parsed

    @staticmethod
    def _first_param(params: dict[str, list[str]], key: str) -> str | None:
        """Return the first value for *key* from query parameters, or None."""
        values = params.get(key)
        return values[0] if values else None


def create_server(host: str = "0.0.0.0", port: int = 8080) -> HTTPServer:
    """Create (but do not start) the agent-registry HTTP server.

    Parameters
    ----------
    host:
        Bind address (default ``"0.0.0.0"``, all interfaces).
    port:
        TCP port to listen on (default 8080).
    """
    server = HTTPServer((host, port), AgentRegistryHandler)
    logger.info("agent-registry server created at http://%s:%d", host, port)
    return server


def run_server(host: str = "0.0.0.0", port: int = 8080) -> None:
    """Create and run the agent-registry HTTP server (blocking)."""
    server = create_server(host=host, port=port)
    logger.info("Serving agent-registry on http://%s:%d (Ctrl-C to stop)", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down agent-registry server.")
    finally:
        server.server_close()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="agent-registry HTTP server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8080, help="TCP port")
    parser.add_argument("--config", default=None, help="Registry TOML configuration file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


if __name__ == "__main__":
    from agent_registry.config import load_config

    args = _build_arg_parser().parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level))
    routes.reset_state(config=load_config(args.config))
    run_server(host=args.host, port=args.port)

"""
Control server.
Lightweight HTTP interface used by the dashboard: read/update the live
configuration, query monitor status and recent log lines, and send
start/stop/restart commands.
"""

from __future__ import annotations

import enum
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import urlparse

from . import config
from .events import broadcast_log, recent_logs

logger = logging.getLogger(__name__)


class Command(str, enum.Enum):
    RESTART = "restart_monitor"
    START = "start_monitor"
    STOP = "stop_monitor"


def parse_command(raw: Any) -> Optional[Command]:
    """Return the command named by a control message, or None if malformed."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None
    try:
        return Command(raw.get("type"))
    except (TypeError, ValueError):
        return None


def dispatch_command(monitor, raw: Any) -> bool:
    command = parse_command(raw)
    if command is None:
        return False
    if command is Command.RESTART:
        monitor.restart()
    elif command is Command.START:
        monitor.start()
    else:
        monitor.stop()
    return True


def merge_config_update(current: config.MonitorConfig, raw: Any) -> config.MonitorConfig:
    """Overlay a partial config document on the current one and validate it."""
    if not isinstance(raw, dict):
        raise config.ConfigError("configuration update must be a JSON object")
    merged = current.to_dict()
    for key in config.DEFAULTS:
        if raw.get(key) is not None:
            merged[key] = raw[key]
    return config.parse_config(merged)


class ControlHandler(BaseHTTPRequestHandler):
    """Routes for the monitor's control API."""

    server: "_ControlHTTPServer"

    def log_message(self, format, *args):
        """Override to use Python logging instead of stderr."""
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self):
        path = urlparse(self.path).path
        if path == "/api/status":
            monitor = self.server.monitor
            self._send_json(200, {
                "state": monitor.status.value,
                "sites": len(self.server.load_config().sites),
            })
        elif path == "/api/config":
            self._send_json(200, self.server.load_config().to_dict())
        elif path == "/api/logs":
            self._send_json(200, [e.to_dict() for e in recent_logs.snapshot()])
        elif path in ("/", "/health"):
            self._send_json(200, {"status": "ok"})
        else:
            self._send_json(404, {"error": "Not Found"})

    def do_POST(self):
        path = urlparse(self.path).path
        if path == "/api/config":
            self._update_config()
        elif path == "/api/command":
            # unknown or malformed commands are dropped without a reply body
            dispatch_command(self.server.monitor, self._read_body())
            self._send_empty(204)
        else:
            self._send_json(404, {"error": "Not Found"})

    def do_PUT(self):
        if urlparse(self.path).path == "/api/config":
            self._update_config()
        else:
            self._send_json(404, {"error": "Not Found"})

    def _update_config(self):
        try:
            raw = json.loads(self._read_body() or b"{}")
            updated = merge_config_update(self.server.load_config(), raw)
            config.save_config(updated, self.server.config_path)
        except (ValueError, OSError) as e:
            self._send_json(400, {"success": False, "error": str(e)})
            return
        broadcast_log("Configuration updated - restarting monitor...", "success")
        self.server.monitor.restart()
        self._send_json(200, {"success": True, "config": updated.to_dict()})

    def _read_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = 0
        return self.rfile.read(length) if length > 0 else b""

    def _send_json(self, status: int, body: Any):
        data = json.dumps(body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _send_empty(self, status: int):
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()


class _ControlHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, monitor, config_path: Optional[str]):
        super().__init__(address, ControlHandler)
        self.monitor = monitor
        self.config_path = config_path

    def load_config(self) -> config.MonitorConfig:
        return config.load_config(self.config_path)


class ControlServer:
    def __init__(self, monitor, host: str = config.CONTROL_HOST, port: int = config.CONTROL_PORT,
                 config_path: Optional[str] = None):
        self.monitor = monitor
        self.host = host
        self.port = port
        self.config_path = config_path
        self.server: Optional[_ControlHTTPServer] = None
        self.server_thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.server is not None

    def start(self) -> str:
        """Start the server and return the base URL."""
        if self.server is None:
            self.server = _ControlHTTPServer((self.host, self.port), self.monitor, self.config_path)
            # port 0 binds an ephemeral port
            self.port = self.server.server_address[1]
            self.server_thread = threading.Thread(
                target=self.server.serve_forever, name="control-server", daemon=True
            )
            self.server_thread.start()
            logger.info("Control server started at http://%s:%d", self.host, self.port)
        return f"http://{self.host}:{self.port}"

    def stop(self) -> None:
        if self.server is not None:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Control server stopped")


__all__ = [
    "Command",
    "parse_command",
    "dispatch_command",
    "merge_config_update",
    "ControlHandler",
    "ControlServer",
]

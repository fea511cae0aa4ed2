"""Client for a process compose server reached over TCP or a unix socket."""

from __future__ import annotations

import http.client
import json
import logging
import socket
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

import websocket

from .api import LogMessage
from .project import IProject

log = logging.getLogger(__name__)

UNIX_ADDRESS = "unix"


class ClientError(Exception):
    """The server answered a request with an error."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


@dataclass
class _Response:
    status: int
    reason: str
    body: bytes

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.reason}".strip()

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


class _UnixHTTPConnection(http.client.HTTPConnection):
    """HTTP connection carried over a unix domain socket."""

    def __init__(self, path: str, timeout: float | None = None):
        if timeout is None:
            super().__init__(UNIX_ADDRESS)
        else:
            super().__init__(UNIX_ADDRESS, timeout=timeout)
        self._path = path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        if isinstance(self.timeout, (int, float)):
            sock.settimeout(self.timeout)
        try:
            sock.connect(self._path)
        except OSError:
            sock.close()
            raise
        self.sock = sock


def _state_list(payload: Any) -> list[dict]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "states"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


class LogClient:
    """Reads the log stream of a process over a websocket."""

    def __init__(self, address: str, socket_path: str = "", format: str = "%s"):
        self.address = address
        self.socket_path = socket_path
        self.format = format
        self._ws: websocket.WebSocket | None = None
        self._closed = threading.Event()
        self._reader: threading.Thread | None = None

    def read_process_logs(self, name: str, offset: int, follow: bool, out: Any) -> None:
        """Connect to the log stream of ``name`` and copy it to ``out`` in the background.

        ``out`` is an object with ``write_string`` or ``write``.
        """
        query = urlencode(
            {"name": name, "offset": offset, "follow": "true" if follow else "false"}
        )
        url = f"ws://{self.address}/process/logs/ws?{query}"
        log.info("Connecting to %s", url)
        options: dict[str, Any] = {}
        if self.address == UNIX_ADDRESS:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.connect(self.socket_path)
            except OSError as exc:
                sock.close()
                log.error("failed to dial to %s error: %s", url, exc)
                raise
            options["socket"] = sock
        try:
            ws = websocket.create_connection(url, **options)
        except (OSError, websocket.WebSocketException) as exc:
            log.error("failed to dial to %s error: %s", url, exc)
            raise
        self._ws = ws
        self._closed.clear()
        writer: Callable[[str], Any] = getattr(out, "write_string", None) or out.write
        self._reader = threading.Thread(
            target=self._read_logs, args=(ws, follow, writer), daemon=True
        )
        self._reader.start()

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the stream to end; return True if it did."""
        if self._reader is None:
            return True
        self._reader.join(timeout)
        return not self._reader.is_alive()

    def close_channel(self) -> None:
        """Tell the server the stream is closed and drop the connection."""
        if self._ws is None:
            raise RuntimeError("log stream is not open")
        self._ws.send_close(status=websocket.STATUS_NORMAL)
        self._closed.set()
        self._ws.shutdown()

    def _read_logs(self, ws: websocket.WebSocket, follow: bool, writer) -> None:
        try:
            while True:
                opcode, data = ws.recv_data()
                if opcode == websocket.ABNF.OPCODE_CLOSE:
                    return
                if isinstance(data, bytes):
                    data = data.decode("utf-8", "replace")
                try:
                    message = LogMessage.from_dict(json.loads(data))
                except (ValueError, AttributeError) as exc:
                    log.error("failed to read message: %s", exc)
                    return
                if message.process_name:
                    writer(self.format % (message.message,))
        except (websocket.WebSocketException, OSError) as exc:
            if self._closed.is_set() or not follow:
                log.debug("log stream ended: %s", exc)
                return
            log.error("failed to read message: %s", exc)


class PcClient(IProject):
    """A project that runs on a remote process compose server."""

    def __init__(
        self,
        address: str,
        log_length: int,
        logger: LogClient,
        socket_path: str = "",
        timeout: float | None = None,
    ):
        self.address = address
        self.log_length = log_length
        self.logger = logger
        self._socket_path = socket_path
        self._timeout = timeout
        self._err_lock = threading.Lock()
        self._first_error = 0.0
        self._is_errored = False

    def _connection(self) -> http.client.HTTPConnection:
        if self.address == UNIX_ADDRESS:
            return _UnixHTTPConnection(self._socket_path, self._timeout)
        if self._timeout is None:
            return http.client.HTTPConnection(self.address)
        return http.client.HTTPConnection(self.address, timeout=self._timeout)

    def _request(self, method: str, path: str, payload: Any = None) -> _Response:
        conn = self._connection()
        try:
            headers = {"Content-Type": "application/json"}
            body = None if payload is None else json.dumps(payload).encode("utf-8")
            conn.request(method, path, body=body, headers=headers)
            resp = conn.getresponse()
            return _Response(resp.status, resp.reason, resp.read())
        finally:
            conn.close()

    @staticmethod
    def _raise_error(resp: _Response, action: str) -> None:
        try:
            payload = resp.json()
        except ValueError as exc:
            log.error("failed to decode %s response: %s", action, exc)
            raise
        message = payload.get("error", "") if isinstance(payload, dict) else ""
        raise ClientError(message or resp.status_line, resp.status)

    def _get_json(self, path: str, action: str) -> Any:
        resp = self._request("GET", path)
        if resp.status != 200:
            self._raise_error(resp, action)
        try:
            return resp.json()
        except ValueError as exc:
            log.error("failed to decode %s: %s", action, exc)
            raise

    def _simple(self, method: str, path: str, action: str) -> None:
        resp = self._request(method, path)
        if resp.status != 200:
            self._raise_error(resp, action)

    def shut_down_project(self) -> None:
        resp = self._request("POST", "/project/stop")
        if resp.status != 200:
            raise ClientError(
                f"failed to stop project - unexpected status code: {resp.status_line}",
                resp.status,
            )

    def is_remote(self) -> bool:
        return True

    def get_host_name(self) -> str:
        resp = self._request("GET", "/hostname")
        if resp.status != 200:
            raise ClientError(f"unexpected status {resp.status_line}", resp.status)
        return str(resp.json().get("name", ""))

    def get_log_length(self) -> int:
        return self.log_length

    def get_logs_and_subscribe(self, name: str, observer: Any) -> None:
        self.logger.read_process_logs(name, self.log_length, True, observer)

    def unsubscribe_logger(self, name: str, observer: Any) -> None:
        self.logger.close_channel()

    def get_process_log(self, name: str, offset_from_end: int, limit: int) -> list[str]:
        path = f"/process/logs/{quote(name, safe='')}/{offset_from_end}/{limit}"
        return list(self._get_json(path, f"logs of {name}").get("logs", []))

    def get_lexicographic_process_names(self) -> list[str]:
        return self.get_processes_name()

    def get_processes_name(self) -> list[str]:
        states = _state_list(self.get_processes_state())
        return sorted(str(state.get("name", "")) for state in states)

    def get_process_info(self, name: str) -> Any:
        return self._get_json(f"/process/info/{quote(name, safe='')}", f"info of {name}")

    def get_process_ports(self, name: str) -> Any:
        return self._get_json(f"/process/ports/{quote(name, safe='')}", f"ports of {name}")

    def get_process_state(self, name: str) -> Any:
        return self._get_json(f"/process/{quote(name, safe='')}", f"state of {name}")

    def get_processes_state(self) -> Any:
        return self._get_json("/processes", "process states")

    def stop_process(self, name: str) -> None:
        self._simple("PATCH", f"/process/stop/{quote(name, safe='')}", f"stop process {name}")

    def stop_processes(self, names: list[str]) -> list[str]:
        resp = self._request("PATCH", "/processes/stop", list(names))
        if resp.status != 200:
            self._raise_error(resp, f"stop processes {names}")
        stopped = resp.json()
        log.info("stopped: %s", stopped)
        return list(stopped)

    def start_process(self, name: str) -> None:
        self._simple("POST", f"/process/start/{quote(name, safe='')}", f"start process {name}")

    def restart_process(self, name: str) -> None:
        self._simple(
            "POST", f"/process/restart/{quote(name, safe='')}", f"restart process {name}"
        )

    def scale_process(self, name: str, scale: int) -> None:
        self._simple(
            "PATCH",
            f"/process/scale/{quote(name, safe='')}/{int(scale)}",
            f"scale process {name}",
        )

    def is_alive(self) -> None:
        """Raise unless the server answers its liveness check."""
        try:
            resp = self._request("GET", "/live")
            if resp.status != 200:
                raise ClientError(f"unexpected status {resp.status_line}", resp.status)
        except Exception:
            with self._err_lock:
                if not self._is_errored:
                    self._is_errored = True
                    self._first_error = time.monotonic()
            raise
        with self._err_lock:
            self._is_errored = False

    def error_for_secs(self) -> int:
        with self._err_lock:
            if not self._is_errored:
                return 0
            return int(time.monotonic() - self._first_error)

    def get_project_state(self, with_memory: bool) -> Any:
        flag = "true" if with_memory else "false"
        resp = self._request("GET", f"/project/state?withMemory={flag}")
        if resp.status != 200:
            log.error(
                "failed to get project state - unexpected status code: %s",
                resp.status_line,
            )
        try:
            return resp.json()
        except ValueError as exc:
            log.error("failed to decode project state: %s", exc)
            raise


def new_uds_client(sock_path: str, log_length: int) -> PcClient:
    """A client for a server listening on the unix socket ``sock_path``."""
    return PcClient(
        UNIX_ADDRESS, log_length, LogClient(UNIX_ADDRESS, sock_path), socket_path=sock_path
    )


def new_tcp_client(host: str, port: int, log_length: int) -> PcClient:
    """A client for a server listening on ``host``:``port``."""
    address = f"{host}:{port}"
    return PcClient(address, log_length, LogClient(address, ""))
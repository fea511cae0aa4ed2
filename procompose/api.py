"""HTTP and websocket API that exposes a project."""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import json
import logging
import os
import queue
import re
import socket
import struct
import threading
from dataclasses import dataclass
from typing import Any

from flask import Flask, Response, jsonify, request

from .project import IProject

log = logging.getLogger(__name__)

ENV_DEBUG_MODE = "PC_DEBUG_MODE"

_WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
_INT = re.compile(r"[+-]?\d+")
_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}

_OP_TEXT = 0x1
_OP_CLOSE = 0x8
_OP_PING = 0x9
_OP_PONG = 0xA
_CLOSE_NORMAL = 1000

_CLOSED = object()
_REMOTE_CLOSED = object()


@dataclass
class LogMessage:
    """One log line sent over the logs stream."""

    message: str = ""
    process_name: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "process_name": self.process_name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogMessage:
        return cls(
            message=str(data.get("message", "")),
            process_name=str(data.get("process_name", "")),
        )


def _atoi(value: str | None) -> int:
    if value is None or not _INT.fullmatch(value):
        raise ValueError(f"invalid integer {value!r}")
    return int(value)


def _jsonable(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (list, tuple)):
        return [_jsonable(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _jsonable(value) for key, value in obj.items()}
    return obj


def _error(exc: Any, status: int = 400):
    return jsonify({"error": str(exc)}), status


def _accept_key(key: str) -> str:
    digest = hashlib.sha1((key + _WS_GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


def _encode_frame(opcode: int, payload: bytes) -> bytes:
    size = len(payload)
    head = bytes([0x80 | opcode])
    if size < 126:
        head += bytes([size])
    elif size < 1 << 16:
        head += bytes([126]) + struct.pack("!H", size)
    else:
        head += bytes([127]) + struct.pack("!Q", size)
    return head + payload


class _WebSocket:
    """Server side of a websocket on an already upgraded connection."""

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._lock = threading.Lock()

    def _send(self, opcode: int, payload: bytes) -> None:
        with self._lock:
            self._sock.sendall(_encode_frame(opcode, payload))

    def send_text(self, text: str) -> None:
        self._send(_OP_TEXT, text.encode("utf-8"))

    def send_close(self, code: int = _CLOSE_NORMAL) -> None:
        self._send(_OP_CLOSE, struct.pack("!H", code))

    def send_pong(self, payload: bytes) -> None:
        self._send(_OP_PONG, payload)

    def _recv_exact(self, size: int) -> bytes:
        data = b""
        while len(data) < size:
            chunk = self._sock.recv(size - len(data))
            if not chunk:
                raise ConnectionError("connection closed")
            data += chunk
        return data

    def receive(self) -> tuple[int, bytes]:
        first, second = self._recv_exact(2)
        opcode = first & 0x0F
        size = second & 0x7F
        if size == 126:
            (size,) = struct.unpack("!H", self._recv_exact(2))
        elif size == 127:
            (size,) = struct.unpack("!Q", self._recv_exact(8))
        mask = self._recv_exact(4) if second & 0x80 else b""
        payload = self._recv_exact(size)
        if mask:
            payload = bytes(byte ^ mask[i % 4] for i, byte in enumerate(payload))
        return opcode, payload

    def close(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass


class _LogConnector:
    """Log observer that feeds a process's log lines into a queue."""

    def __init__(self, name: str, follow: bool, offset: int, sink: queue.Queue):
        self.tail_length = offset
        self._name = name
        self._follow = follow
        self._sink = sink

    def set_lines(self, lines: list[str]) -> None:
        for line in lines:
            self._sink.put(LogMessage(line, self._name))
        if not self._follow:
            self._sink.put(_CLOSED)

    def write_string(self, message: str) -> int:
        self._sink.put(LogMessage(message, self._name))
        return len(message)


def _handle_incoming(ws: _WebSocket, sink: queue.Queue) -> None:
    try:
        while True:
            opcode, payload = ws.receive()
            if opcode == _OP_CLOSE:
                return
            if opcode == _OP_PING:
                ws.send_pong(payload)
    except (OSError, ValueError) as exc:
        log.debug("log stream reader stopped: %s", exc)
    finally:
        sink.put(_REMOTE_CLOSED)


def _stream_logs(
    project: IProject, ws: _WebSocket, name: str, follow: bool, offset: int
) -> None:
    sink: queue.Queue = queue.Queue()
    connector = _LogConnector(name, follow, offset, sink)
    if follow:
        threading.Thread(
            target=_handle_incoming, args=(ws, sink), daemon=True
        ).start()
    try:
        project.get_logs_and_subscribe(name, connector)
        while True:
            item = sink.get()
            if item is _REMOTE_CLOSED:
                log.warning("Socket closed remotely")
                break
            message = LogMessage() if item is _CLOSED else item
            try:
                ws.send_text(json.dumps(message.to_dict()))
            except OSError as exc:
                log.error("Failed to write to socket: %s", exc)
                break
            if item is _CLOSED:
                try:
                    ws.send_close()
                except OSError:
                    pass
                break
    except Exception as exc:
        log.error("log stream of %s failed: %s", name, exc)
    finally:
        try:
            project.unsubscribe_logger(name, connector)
        except Exception as exc:
            log.error("failed to unsubscribe from %s: %s", name, exc)
        ws.close()


class _UpgradedResponse(Response):
    """Ends a request whose connection was taken over by a websocket."""

    def __call__(self, environ, start_response):
        raise ConnectionError("websocket session ended")


def create_app(project: IProject, use_logger: bool = False) -> Flask:
    """Build the web application serving ``project``."""
    app = Flask(__name__)

    if use_logger:

        @app.after_request
        def _log_request(response):
            log.info("%s %s %s", request.method, request.path, response.status_code)
            return response

    @app.get("/live")
    def is_alive():
        return jsonify({"status": "alive"})

    @app.get("/hostname")
    def get_host_name():
        try:
            name = project.get_host_name()
        except Exception as exc:
            return _error(exc)
        return jsonify({"name": name})

    @app.get("/processes")
    def get_processes():
        try:
            states = project.get_processes_state()
        except Exception as exc:
            return _error(exc)
        return jsonify(_jsonable(states))

    @app.get("/process/<name>")
    def get_process(name):
        try:
            state = project.get_process_state(name)
        except Exception as exc:
            return _error(exc)
        return jsonify(_jsonable(state))

    @app.get("/process/info/<name>")
    def get_process_info(name):
        try:
            info = project.get_process_info(name)
        except Exception as exc:
            return _error(exc)
        return jsonify(_jsonable(info))

    @app.get("/process/ports/<name>")
    def get_process_ports(name):
        try:
            ports = project.get_process_ports(name)
        except Exception as exc:
            return _error(exc)
        return jsonify(_jsonable(ports))

    @app.get("/process/logs/<name>/<end_offset>/<limit>")
    def get_process_logs(name, end_offset, limit):
        try:
            offset = _atoi(end_offset)
            count = _atoi(limit)
            logs = project.get_process_log(name, offset, count)
        except Exception as exc:
            return _error(exc)
        return jsonify({"logs": list(logs)})

    @app.patch("/process/stop/<name>")
    def stop_process(name):
        try:
            project.stop_process(name)
        except Exception as exc:
            return _error(exc)
        return jsonify({"name": name})

    @app.patch("/processes/stop")
    def stop_processes():
        names = request.get_json(force=True, silent=True)
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            return _error("request body must be a JSON array of process names")
        try:
            stopped = project.stop_processes(names)
        except Exception as exc:
            return _error(exc)
        return jsonify(list(stopped))

    @app.post("/process/start/<name>")
    def start_process(name):
        try:
            project.start_process(name)
        except Exception as exc:
            return _error(exc)
        return jsonify({"name": name})

    @app.post("/process/restart/<name>")
    def restart_process(name):
        try:
            project.restart_process(name)
        except Exception as exc:
            return _error(exc)
        return jsonify({"name": name})

    @app.patch("/process/scale/<name>/<scale>")
    def scale_process(name, scale):
        try:
            project.scale_process(name, _atoi(scale))
        except Exception as exc:
            return _error(exc)
        return jsonify({"name": name})

    @app.post("/project/stop")
    def shut_down_project():
        try:
            project.shut_down_project()
        except Exception as exc:
            log.error("failed to shut down project: %s", exc)
        return jsonify({"status": "stopped"})

    @app.get("/project/state")
    def get_project_state():
        check_mem = request.args.get("withMemory", "false") in _TRUE_VALUES
        try:
            state = project.get_project_state(check_mem)
        except Exception as exc:
            return _error(exc, 500)
        return jsonify(_jsonable(state))

    @app.get("/process/logs/ws")
    def logs_stream():
        name = request.args.get("name", "")
        follow = request.args.get("follow") == "true"
        try:
            offset = _atoi(request.args.get("offset"))
        except ValueError as exc:
            return _error(exc)
        sock = request.environ.get("werkzeug.socket")
        key = request.headers.get("Sec-WebSocket-Key")
        upgrade = request.headers.get("Upgrade", "").lower()
        if sock is None or not key or upgrade != "websocket":
            return _error("the client is not using the websocket protocol")
        handshake = (
            "HTTP/1.1 101 Switching Protocols\r\n"
            "Upgrade: websocket\r\n"
            "Connection: Upgrade\r\n"
            f"Sec-WebSocket-Accept: {_accept_key(key)}\r\n\r\n"
        )
        sock.sendall(handshake.encode("ascii"))
        _stream_logs(project, _WebSocket(sock), name, follow, offset)
        return _UpgradedResponse()

    return app


def _prepare_app(use_logger: bool, project: IProject) -> Flask:
    if not os.environ.get(ENV_DEBUG_MODE):
        use_logger = False
        logging.getLogger("werkzeug").setLevel(logging.ERROR)
    return create_app(project, use_logger)


def _serve(app: Flask, host: str, port: int, endpoint: str) -> threading.Thread:
    def target() -> None:
        try:
            app.run(host=host, port=port, threaded=True, use_reloader=False)
        except (Exception, SystemExit) as exc:
            log.critical("start http server on %s failed: %s", endpoint, exc)
            os._exit(1)

    thread = threading.Thread(target=target, name="pc-http-server", daemon=True)
    thread.start()
    return thread


def start_http_server_with_tcp(
    use_logger: bool, port: int, project: IProject
) -> threading.Thread:
    """Serve ``project`` on ``port`` of all interfaces in a background thread."""
    app = _prepare_app(use_logger, project)
    endpoint = f":{port}"
    log.info("start http server listening %s", endpoint)
    return _serve(app, "0.0.0.0", port, endpoint)


def start_http_server_with_unix_socket(
    use_logger: bool, unix_socket: str, project: IProject
) -> threading.Thread:
    """Serve ``project`` on a unix domain socket in a background thread."""
    app = _prepare_app(use_logger, project)
    log.info("start UDS http server listening %s", unix_socket)
    try:
        os.remove(unix_socket)
    except OSError:
        pass
    return _serve(app, f"unix://{unix_socket}", 0, unix_socket)
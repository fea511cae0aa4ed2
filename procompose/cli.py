"""Command line interface for talking to a running process compose server."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TextIO

from . import config
from .client import LogClient, PcClient, new_tcp_client, new_uds_client

log = logging.getLogger(__name__)

_SECOND_NS = 10**9
_INTEGER = re.compile(r"[+-]?\d+")
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1,
    "us": 10**3,
    "µs": 10**3,
    "μs": 10**3,
    "ms": 10**6,
    "s": _SECOND_NS,
    "m": 60 * _SECOND_NS,
    "h": 3600 * _SECOND_NS,
}

_TABLE_COLUMNS = (
    ("PID", "pid"),
    ("NAME", "name"),
    ("NAMESPACE", "namespace"),
    ("STATUS", "status"),
    ("AGE", "system_time"),
    ("HEALTH", "health"),
    ("RESTARTS", "restarts"),
    ("EXITCODE", "exit_code"),
)
_LONGEST_STATE_KEY = len("Running Processes")
_INFO_FORMAT = "{:<15} {}\n"


def _parse_duration_ns(text: str) -> int:
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return 0
    if not rest:
        raise ValueError(f"invalid duration {text!r}")
    total = 0
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += round(float(match.group(1)) * _DURATION_UNITS[match.group(2)])
        pos = match.end()
    return sign * total


def _fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    digits = str(rest).rjust(len(str(unit)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"


def _format_duration_ns(ns: int) -> str:
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    value = abs(ns)
    if value < 10**3:
        return f"{sign}{value}ns"
    if value < 10**6:
        return f"{sign}{_fraction(value, 10**3)}µs"
    if value < _SECOND_NS:
        return f"{sign}{_fraction(value, 10**6)}ms"
    hours, rem = divmod(value, 3600 * _SECOND_NS)
    minutes, rem = divmod(rem, 60 * _SECOND_NS)
    seconds = _fraction(rem, _SECOND_NS)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def parse_refresh_rate(value: str) -> float:
    """Parse an integer number of seconds or a duration such as ``1m30s``."""
    if _INTEGER.fullmatch(value):
        return float(int(value))
    try:
        return _parse_duration_ns(value) / _SECOND_NS
    except ValueError:
        raise ValueError(
            f'invalid refresh rate "{value}", must be a duration or an integer in seconds'
        ) from None


def format_refresh_rate(seconds: float) -> str:
    """Whole seconds as a plain integer, anything else as a duration."""
    ns = round(seconds * _SECOND_NS)
    if ns % _SECOND_NS == 0:
        return str(ns // _SECOND_NS)
    return _format_duration_ns(ns)


def _get(obj: Any, key: str, default: Any = "") -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _states(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "states"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return list(_get(payload, "states", []) or [])


def _go_list(items: Iterable[Any]) -> str:
    return "[" + " ".join(str(item) for item in items) + "]"


def format_states_table(states: Iterable[Any]) -> str:
    """Render process states as an aligned table."""
    rows = [
        [str(_get(state, key, 0 if key in ("pid", "restarts", "exit_code") else ""))
         for _, key in _TABLE_COLUMNS]
        for state in states
    ]
    headers = [title for title, _ in _TABLE_COLUMNS]
    widths = [
        max([len(title)] + [len(row[index]) for row in rows])
        for index, title in enumerate(headers)
    ]
    lines = []
    for cells in [headers, *rows]:
        lines.append("".join(f"{cell:<{width}}   " for cell, width in zip(cells, widths)))
    return "".join(line + "\n" for line in lines)


def _green(text: str) -> str:
    return f"\x1b[32m{text}\x1b[0m"


def _state_line(key: str, value: Any) -> str:
    padding = " " * (_LONGEST_STATE_KEY - len(key))
    return f"{_green(key)}:{padding} {value}\n"


def format_state(state: Any) -> str:
    """Render a project state for the terminal."""
    up_time_ns = int(_get(state, "upTime", 0) or 0)
    rounded = (abs(up_time_ns) + _SECOND_NS // 2) // _SECOND_NS * _SECOND_NS
    if up_time_ns < 0:
        rounded = -rounded
    parts = [
        _state_line("Hostname", _get(state, "hostName")),
        _state_line("User", _get(state, "userName")),
        _state_line("Version", _get(state, "version")),
        _state_line("Up Time", _format_duration_ns(rounded)),
        _state_line("Processes", _get(state, "processNum", 0)),
        _state_line("Running Processes", _get(state, "runningProcessNum", 0)),
        f"{_green('File Names')}:\n",
    ]
    parts += [f"\t - {name}\n" for name in _get(state, "fileNames", []) or []]
    memory = _get(state, "memoryState", None)
    if memory:
        parts += [
            _state_line("Allocated MB", _get(memory, "allocated", 0)),
            _state_line("Total Alloc MB", _get(memory, "totalAllocated", 0)),
            _state_line("System MB", _get(memory, "systemMemory", 0)),
            _state_line("GC Cycles", _get(memory, "gcCycles", 0)),
        ]
    return "".join(parts)


def format_info() -> str:
    """Paths of the log, shortcuts, theme and settings files."""
    out = ["Process Compose\n", _INFO_FORMAT.format("Logs:", config.get_log_file_path())]
    shortcuts = config.get_short_cuts_path()
    if shortcuts:
        out.append(_INFO_FORMAT.format("Shortcuts:", shortcuts))
    out.append(_INFO_FORMAT.format("Custom Theme:", config.get_themes_path()))
    out.append(_INFO_FORMAT.format("Settings:", config.get_settings_path()))
    return "".join(out)


def format_version() -> str:
    """Version and build information."""
    return "".join(
        [
            "Process Compose\n",
            _INFO_FORMAT.format("Version:", config.VERSION),
            _INFO_FORMAT.format("Commit:", config.COMMIT),
            _INFO_FORMAT.format("Date (UTC):", config.DATE),
            _INFO_FORMAT.format("License:", config.LICENSE),
        ]
    )


@dataclass
class _Context:
    args: argparse.Namespace
    flags: config.Flags
    out: TextIO

    def client(self) -> PcClient:
        if self.flags.is_unix_socket:
            return new_uds_client(self.flags.unix_socket_path, self.flags.log_length)
        return new_tcp_client(self.flags.address, self.flags.port_num, self.flags.log_length)

    def log_client(self) -> LogClient:
        if self.flags.is_unix_socket:
            return LogClient("unix", self.flags.unix_socket_path, format="%s\n")
        return LogClient(f"{self.flags.address}:{self.flags.port_num}", "", format="%s\n")


def _fatal(message: str, exc: BaseException | None = None) -> int:
    if exc is None:
        log.critical("%s", message)
    else:
        log.critical("%s: %s", message, exc)
    return 1


def _cmd_down(ctx: _Context) -> int:
    try:
        ctx.client().shut_down_project()
    except Exception as exc:
        return _fatal("failed to stop project", exc)
    log.info("Project stopped")
    return 0


def _cmd_info(ctx: _Context) -> int:
    ctx.out.write(format_info())
    return 0


def _cmd_version(ctx: _Context) -> int:
    ctx.out.write(format_version())
    return 0


def _cmd_list(ctx: _Context) -> int:
    try:
        payload = ctx.client().get_processes_state()
    except Exception as exc:
        return _fatal("failed to list processes", exc)
    states = sorted(_states(payload), key=lambda state: str(_get(state, "name")))
    output = ctx.flags.output_format
    if output == "json":
        ctx.out.write(json.dumps(states, indent="\t"))
    elif output == "wide":
        ctx.out.write(format_states_table(states))
    elif output == "":
        for state in states:
            ctx.out.write(f"{_get(state, 'name')}\n")
    else:
        return _fatal(f"unknown output format {output}")
    return 0


def _cmd_logs(ctx: _Context) -> int:
    name = ctx.args.name
    logger = ctx.log_client()
    try:
        logger.read_process_logs(name, ctx.flags.log_tail_length, ctx.flags.log_follow, ctx.out)
    except Exception as exc:
        return _fatal(f"Failed to fetch logs for process {name}", exc)
    try:
        while not logger.wait(0.5):
            pass
    except KeyboardInterrupt:
        ctx.out.write("interrupt\n")
        try:
            logger.close_channel()
        except Exception as exc:
            log.debug("closing log stream failed: %s", exc)
        time.sleep(1)
    return 0


def _cmd_ports(ctx: _Context) -> int:
    name = ctx.args.name
    try:
        ports = ctx.client().get_process_ports(name)
    except Exception as exc:
        return _fatal(f"failed to get process {name} ports", exc)
    tcp = _go_list(_get(ports, "tcp_ports", []) or [])
    log.info("Process %s TCP ports: %s", name, tcp)
    ctx.out.write(f"Process {name} TCP ports: {tcp}\n")
    return 0


def _cmd_restart(ctx: _Context) -> int:
    name = ctx.args.name
    try:
        ctx.client().restart_process(name)
    except Exception as exc:
        return _fatal(f"failed to restart process {name}", exc)
    ctx.out.write(f"Process {name} restarted\n")
    return 0


def _cmd_start(ctx: _Context) -> int:
    name = ctx.args.name
    try:
        ctx.client().start_process(name)
    except Exception as exc:
        return _fatal(f"failed to start process {name}", exc)
    ctx.out.write(f"Process {name} started\n")
    return 0


def _cmd_scale(ctx: _Context) -> int:
    name, count_text = ctx.args.name, ctx.args.count
    if not _INTEGER.fullmatch(count_text):
        return _fatal("second argument must be an integer")
    try:
        ctx.client().scale_process(name, int(count_text))
    except Exception as exc:
        return _fatal(f"failed to scale process {name}", exc)
    log.info("Process %s scaled to %s", name, count_text)
    return 0


def _cmd_stop(ctx: _Context) -> int:
    names = list(ctx.args.names)
    try:
        stopped = ctx.client().stop_processes(names)
    except Exception as exc:
        return _fatal(f"failed to stop processes {_go_list(names)}", exc)
    ctx.out.write(f"Processes {_go_list(stopped)} stopped\n")
    return 0


def _cmd_state(ctx: _Context) -> int:
    try:
        state = ctx.client().get_project_state(ctx.args.with_memory)
    except Exception as exc:
        return _fatal("failed to get project state", exc)
    ctx.out.write(format_state(state))
    return 0


def _add_common(parser: argparse.ArgumentParser, suppress: bool) -> None:
    def default(value: Any) -> Any:
        return argparse.SUPPRESS if suppress else value

    parser.add_argument("-a", "--address", default=default(None),
                        help="address of the target process compose server")
    parser.add_argument("-p", "--port", type=int, default=default(None),
                        help=f"port number (env: {config.ENV_VAR_NAME_PORT})")
    parser.add_argument("-L", "--log-file", default=default(None),
                        help=f"Specify the log file path (env: {config.LOG_PATH_ENV_VAR_NAME})")
    parser.add_argument("-u", "--unix-socket", default=default(None),
                        help=f"path to unix socket (env: {config.ENV_VAR_UNIX_SOCKET_PATH})")
    parser.add_argument("-U", "--use-uds", action="store_true", default=default(False),
                        help="use unix domain sockets instead of tcp")
    parser.add_argument("--read-only", action="store_true", default=default(False),
                        help=f"enable read-only mode (env: {config.ENV_VAR_READ_ONLY_MODE})")
    parser.add_argument("--no-server", action="store_true", default=default(False),
                        help=f"disable HTTP server (env: {config.ENV_VAR_NAME_NO_SERVER})")
    parser.add_argument("--keep-tui", action="store_true", default=default(False),
                        help="keep TUI running even after all processes exit")
    parser.add_argument("--ordered-shutdown", action="store_true", default=default(False),
                        help="shut down processes in reverse dependency order")


def _leaf(sub, name: str, parent: argparse.ArgumentParser, handler: Callable, **kwargs):
    parser = sub.add_parser(name, parents=[parent], **kwargs)
    parser.set_defaults(handler=handler)
    return parser


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="process-compose", description="Processes scheduler and orchestrator"
    )
    _add_common(parser, suppress=False)
    parser.set_defaults(help_parser=parser)
    common = argparse.ArgumentParser(add_help=False)
    _add_common(common, suppress=True)

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    _leaf(sub, "down", common, _cmd_down,
          help="Stops all the running processes and terminates the Process Compose")
    _leaf(sub, "info", common, _cmd_info, help="Print configuration info")
    _leaf(sub, "version", common, _cmd_version, help="Print version and build info")

    process = sub.add_parser("process", parents=[common],
                             help="Execute operations on the available processes")
    process.set_defaults(help_parser=process)
    psub = process.add_subparsers(dest="action", metavar="ACTION")
    listing = _leaf(psub, "list", common, _cmd_list, aliases=["ls"],
                    help="List available processes")
    listing.add_argument("-o", "--output", default="",
                         help="Output format. One of: (json, wide)")
    logs = _leaf(psub, "logs", common, _cmd_logs, help="Fetch the logs of a process")
    logs.add_argument("name", metavar="PROCESS")
    logs.add_argument("-f", "--follow", action="store_true", help="Follow log output")
    logs.add_argument("-n", "--tail", type=int, default=sys.maxsize,
                      help="Number of lines to show from the end of the logs")
    ports = _leaf(psub, "ports", common, _cmd_ports,
                  help="Get the ports that a process is listening on")
    ports.add_argument("name", metavar="PROCESS")
    restart = _leaf(psub, "restart", common, _cmd_restart, help="Restart a process")
    restart.add_argument("name", metavar="PROCESS")
    start = _leaf(psub, "start", common, _cmd_start, help="Start a process")
    start.add_argument("name", metavar="PROCESS")
    scale = _leaf(psub, "scale", common, _cmd_scale, help="Scale a process to a given count")
    scale.add_argument("name", metavar="PROCESS")
    scale.add_argument("count", metavar="COUNT")
    stop = _leaf(psub, "stop", common, _cmd_stop, help="Stop a running process")
    stop.add_argument("names", metavar="PROCESS", nargs="*")

    project = sub.add_parser("project", parents=[common],
                             help="Execute operations on a running Process Compose project")
    project.set_defaults(help_parser=project)
    prsub = project.add_subparsers(dest="action", metavar="ACTION")
    state = _leaf(prsub, "state", common, _cmd_state, help="Get Process Compose project state")
    state.add_argument("--with-memory", action="store_true", help="check memory usage")
    return parser


def _resolve_flags(args: argparse.Namespace) -> config.Flags:
    flags = config.Flags() if args.port is not None else config.Flags()
    if args.address is not None:
        flags.address = args.address
    if args.port is not None:
        flags.port_num = args.port
    if args.log_file is not None:
        flags.log_file = args.log_file
    flags.unix_socket_path = args.unix_socket or config.get_unix_socket_path()
    flags.is_unix_socket = (
        args.use_uds
        or config.ENV_VAR_UNIX_SOCKET_PATH in os.environ
        or args.unix_socket is not None
    )
    flags.is_read_only_mode = flags.is_read_only_mode or args.read_only
    flags.no_server = flags.no_server or args.no_server
    flags.keep_tui_on = args.keep_tui
    flags.is_ordered_shut_down = args.ordered_shutdown
    flags.output_format = getattr(args, "output", "")
    flags.log_follow = getattr(args, "follow", False)
    flags.log_tail_length = getattr(args, "tail", flags.log_tail_length)
    return flags


def _setup_logger(path: str) -> tuple[list[logging.Handler], TextIO]:
    directory = os.path.dirname(path)
    if directory:
        try:
            os.makedirs(directory, mode=0o700, exist_ok=True)
        except OSError as exc:
            raise OSError(f"Failed to create log directory: {directory} - {exc}") from exc
    try:
        fd = os.open(path, config.LOG_FILE_FLAGS, config.LOG_FILE_MODE)
    except OSError as exc:
        raise OSError(f"Failed to open log file: {path}: {exc}") from exc
    stream = os.fdopen(fd, "w", encoding="utf-8")
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s", datefmt="%y-%m-%d %H:%M:%S"
    )
    file_handler = logging.StreamHandler(stream)
    file_handler.setLevel(logging.DEBUG)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.CRITICAL)
    root = logging.getLogger()
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    return [file_handler, console_handler], stream


def main(argv: list[str] | None = None) -> int:
    """Run the command line; return the exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        args.help_parser.print_help()
        return 1
    try:
        flags = _resolve_flags(args)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        handlers, stream = _setup_logger(flags.log_file)
    except OSError as exc:
        print(exc)
        return 1
    try:
        log.info("Process Compose %s", config.VERSION)
        return handler(_Context(args, flags, sys.stdout))
    finally:
        root = logging.getLogger()
        for item in handlers:
            root.removeHandler(item)
            item.flush()
        stream.close()


if __name__ == "__main__":
    sys.exit(main())
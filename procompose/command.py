"""Building, starting and stopping child processes."""

from __future__ import annotations

import io
import logging
import os
import shutil
import signal
import subprocess
import sys
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import IO, Protocol, Union

log = logging.getLogger(__name__)

MIN_SIGNAL = 1
MAX_SIGNAL = 31

Environment = Union[Mapping[str, str], Iterable[str], None]


@dataclass
class ShellConfig:
    """Shell used to run command strings."""

    shell_command: str = ""
    shell_argument: str = ""


class Commander(Protocol):
    """What the process runner needs from a command."""

    env: Environment
    cwd: str | None

    def start(self) -> None: ...

    def run(self) -> None: ...

    def wait(self) -> int: ...

    @property
    def exit_code(self) -> int: ...

    @property
    def pid(self) -> int: ...

    def stdout_pipe(self) -> IO[bytes]: ...

    def stderr_pipe(self) -> IO[bytes]: ...

    def stop(self, sig: int, parent_only: bool) -> None: ...

    def set_cmd_args(self) -> None: ...

    def attach_io(self) -> None: ...


def _environment(env: Environment) -> dict[str, str] | None:
    if env is None:
        return None
    if isinstance(env, Mapping):
        return dict(env)
    result: dict[str, str] = {}
    for entry in env:
        key, sep, value = entry.partition("=")
        if sep:
            result[key] = value
    return result


class CmdWrapper:
    """A command that is started as a child process.

    ``timeout`` bounds the life of the command, counted from its creation;
    when it runs out, waiting kills the child and raises TimeoutExpired.
    """

    def __init__(self, args: Iterable[str], timeout: float | None = None):
        self.args = list(args)
        self.env: Environment = None
        self.cwd: str | None = None
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self._stdin: int | None = subprocess.DEVNULL
        self._stdout: int | None = subprocess.DEVNULL
        self._stderr: int | None = subprocess.DEVNULL
        self._child_ends: list[int] = []
        self._new_session = False
        self._process: subprocess.Popen | None = None

    def _spawn(self, stdin, stdout, stderr, new_session: bool) -> subprocess.Popen:
        return subprocess.Popen(
            self.args,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            env=_environment(self.env),
            cwd=self.cwd or None,
            start_new_session=new_session,
        )

    def start(self) -> None:
        """Start the child process."""
        if self._process is not None:
            raise RuntimeError("process already started")
        try:
            self._process = self._spawn(
                self._stdin, self._stdout, self._stderr, self._new_session
            )
        finally:
            for fd in self._child_ends:
                os.close(fd)
            self._child_ends.clear()

    def _remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self) -> int:
        """Wait for the child to exit and return its exit code."""
        if self._process is None:
            raise RuntimeError("process not started")
        try:
            self._process.wait(timeout=self._remaining())
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
            raise
        return self.exit_code

    def run(self) -> None:
        """Start the child and wait for it; a non-zero exit raises."""
        self.start()
        code = self.wait()
        if code != 0:
            raise subprocess.CalledProcessError(self._process.returncode, self.args)

    @property
    def exit_code(self) -> int:
        """The exit code, or -1 if the child has not exited or was signalled."""
        if self._process is None or self._process.returncode is None:
            return -1
        return self._process.returncode if self._process.returncode >= 0 else -1

    @property
    def pid(self) -> int:
        if self._process is None:
            raise RuntimeError("process not started")
        return self._process.pid

    def _pipe(self) -> tuple[IO[bytes], int]:
        if self._process is not None:
            raise RuntimeError("pipe requested after the process started")
        read_fd, write_fd = os.pipe()
        self._child_ends.append(write_fd)
        return os.fdopen(read_fd, "rb"), write_fd

    def stdout_pipe(self) -> IO[bytes]:
        """Return a reader connected to the child's standard output."""
        reader, self._stdout = self._pipe()
        return reader

    def stderr_pipe(self) -> IO[bytes]:
        """Return a reader connected to the child's standard error."""
        reader, self._stderr = self._pipe()
        return reader

    def attach_io(self) -> None:
        """Let the child share this process's standard streams."""
        self._stdin = self._stdout = self._stderr = None

    def set_cmd_args(self) -> None:
        """Run the child in its own process group where the system has them."""
        self._new_session = os.name != "nt"

    def stop(self, sig: int, parent_only: bool) -> None:
        """Send ``sig`` to the child, or to its whole process group."""
        if self._process is None:
            return
        if os.name == "nt":
            subprocess.run(
                ["TASKKILL", "/T", "/F", "/PID", str(self.pid)],
                check=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return
        if sig < MIN_SIGNAL or sig > MAX_SIGNAL:
            sig = signal.SIGTERM
        log.debug(
            "Stop Unix process. pid=%d signal=%d parentOnly=%s",
            self.pid,
            int(sig),
            parent_only,
        )
        if parent_only:
            os.kill(self.pid, sig)
            return
        os.killpg(os.getpgid(self.pid), sig)


class CmdWrapperPty(CmdWrapper):
    """A command whose output comes through a pseudo terminal."""

    def __init__(self, args: Iterable[str], timeout: float | None = None):
        super().__init__(args, timeout)
        self._master: IO[bytes] | None = None

    def start(self) -> None:
        if self._master is not None:
            return
        import pty
        import termios
        import tty

        master_fd, slave_fd = pty.openpty()
        try:
            try:
                tty.setraw(slave_fd)
            except termios.error as exc:
                raise OSError(f"error putting PTY into raw mode: {exc}") from exc
            self._process = self._spawn(slave_fd, slave_fd, slave_fd, True)
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)
        self._master = os.fdopen(master_fd, "rb", buffering=0)

    def wait(self) -> int:
        try:
            return super().wait()
        finally:
            if self._master is not None:
                self._master.close()

    def stdout_pipe(self) -> IO[bytes]:
        if self._master is None:
            self.start()
        return self._master

    def stderr_pipe(self) -> IO[bytes]:
        raise io.UnsupportedOperation("not supported in PTY")

    def set_cmd_args(self) -> None:
        """The terminal session already isolates the child."""


def build_command(cmd: str, args: Iterable[str]) -> CmdWrapper:
    return CmdWrapper([cmd, *args])


def build_pty_command(cmd: str, args: Iterable[str]) -> CmdWrapperPty:
    return CmdWrapperPty([cmd, *args])


def _runner_shell() -> str:
    shell = os.environ.get("COMPOSE_SHELL")
    if shell is None:
        shell = "cmd" if sys.platform == "win32" else "bash"
    return shell


def _runner_arg() -> str:
    return "/C" if sys.platform == "win32" else "-c"


def build_command_context(shell_cmd: str, timeout: float | None = None) -> CmdWrapper:
    """Run ``shell_cmd`` through the default shell."""
    return CmdWrapper([_runner_shell(), _runner_arg(), shell_cmd], timeout)


def build_command_shell_arg_context(
    shell: ShellConfig, cmd: str, timeout: float | None = None
) -> CmdWrapper:
    """Run ``cmd`` through the given shell."""
    return CmdWrapper([shell.shell_command, shell.shell_argument, cmd], timeout)


def default_shell_config() -> ShellConfig:
    return ShellConfig(shell_command=_runner_shell(), shell_argument=_runner_arg())


def validate_shell_config(shell: ShellConfig) -> None:
    """Raise FileNotFoundError when the shell cannot be found."""
    if shutil.which(shell.shell_command) is None:
        raise FileNotFoundError(f"Couldn't find {shell.shell_command}")
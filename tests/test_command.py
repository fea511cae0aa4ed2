import io
import signal
import subprocess
import sys

import pytest

from procompose.command import (
    ShellConfig,
    build_command,
    build_command_context,
    build_command_shell_arg_context,
    build_pty_command,
    default_shell_config,
    validate_shell_config,
)


def _python(code):
    return build_command(sys.executable, ["-c", code])


def _drain(stream):
    chunks = []
    while True:
        try:
            data = stream.read(1024)
        except OSError:
            break
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def test_default_shell_config_uses_env(monkeypatch):
    monkeypatch.setenv("COMPOSE_SHELL", "zsh")
    shell = default_shell_config()
    assert shell.shell_command == "zsh"
    assert shell.shell_argument == "-c"


def test_default_shell_config_falls_back_to_bash(monkeypatch):
    monkeypatch.delenv("COMPOSE_SHELL", raising=False)
    assert default_shell_config().shell_command == "bash"


def test_validate_shell_config_missing():
    with pytest.raises(FileNotFoundError):
        validate_shell_config(ShellConfig("no-such-shell-exists-here", "-c"))


def test_build_command_context_args(monkeypatch):
    monkeypatch.setenv("COMPOSE_SHELL", "sh")
    cmd = build_command_context("echo hi")
    assert cmd.args == ["sh", "-c", "echo hi"]


def test_stdout_pipe_and_exit_code():
    cmd = _python("print('hello'); raise SystemExit(3)")
    out = cmd.stdout_pipe()
    cmd.start()
    data = out.read()
    assert cmd.wait() == 3
    assert data.strip() == b"hello"
    assert cmd.exit_code == 3


def test_stderr_pipe():
    cmd = _python("import sys; sys.stderr.write('oops')")
    err = cmd.stderr_pipe()
    cmd.start()
    data = err.read()
    cmd.wait()
    assert data == b"oops"


def test_env_and_cwd(tmp_path):
    cmd = _python("import os; print(os.environ['PC_X'], os.getcwd())")
    cmd.env = ["PC_X=first", "PC_X=second"]
    cmd.cwd = str(tmp_path)
    out = cmd.stdout_pipe()
    cmd.start()
    value, cwd = out.read().decode().split(maxsplit=1)
    cmd.wait()
    assert value == "second"
    assert cwd.strip() == str(tmp_path.resolve())


def test_run_nonzero_raises():
    with pytest.raises(subprocess.CalledProcessError):
        _python("raise SystemExit(2)").run()


def test_run_success_exit_code():
    cmd = _python("pass")
    cmd.run()
    assert cmd.exit_code == 0


def test_shell_arg_context_timeout():
    cmd = build_command_shell_arg_context(
        ShellConfig(sys.executable, "-c"), "import time; time.sleep(10)", timeout=0.3
    )
    with pytest.raises(subprocess.TimeoutExpired):
        cmd.run()


def test_stop_parent_only():
    cmd = _python("import time; time.sleep(30)")
    cmd.start()
    cmd.stop(signal.SIGTERM, True)
    cmd.wait()
    assert cmd.exit_code == -1


def test_stop_group_with_invalid_signal_uses_sigterm():
    cmd = _python("import time; time.sleep(30)")
    cmd.set_cmd_args()
    cmd.start()
    cmd.stop(99, False)
    cmd.wait()
    assert cmd.exit_code == -1


def test_pipe_after_start_fails():
    cmd = _python("pass")
    cmd.start()
    cmd.wait()
    with pytest.raises(RuntimeError):
        cmd.stdout_pipe()


def test_pty_output():
    cmd = build_pty_command(sys.executable, ["-c", "print('from-pty')"])
    out = cmd.stdout_pipe()
    data = _drain(out)
    assert cmd.wait() == 0
    assert b"from-pty" in data


def test_pty_stderr_unsupported():
    cmd = build_pty_command(sys.executable, ["-c", "pass"])
    with pytest.raises(io.UnsupportedOperation):
        cmd.stderr_pipe()
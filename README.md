# procompose

Building blocks for a process scheduler and orchestrator: an HTTP and
websocket API that exposes a project of processes, a client for that API, a
`procompose` command that talks to a running server, helpers for starting and
stopping child processes, and the settings and themes of a terminal UI.

## Installation

```
pip install .
```

## Command line

The `procompose` command is a client for a server that is already running.

```
procompose version                  # version and build information
procompose info                     # log file, shortcuts, theme and settings paths

procompose process list             # process names, sorted
procompose process ls -o wide       # table: PID, NAME, NAMESPACE, STATUS, AGE, HEALTH, RESTARTS, EXITCODE
procompose process list -o json
procompose process logs NAME -f     # follow the log of a process (-n N: lines from the end)
procompose process start NAME
procompose process stop NAME [NAME...]
procompose process restart NAME
procompose process scale NAME COUNT
procompose process ports NAME

procompose project state --with-memory
procompose down                     # stop every process of the project
```

The client connects to `localhost:8080` by default. `-a/--address` and
`-p/--port` choose another server; `-U/--use-uds` or `-u/--unix-socket PATH`
connect over a Unix domain socket instead. Each command writes its own log to
the file given by `-L/--log-file`. A failed command logs the error and exits
with status 1.

Environment variables:

| Variable           | Meaning                                              |
|--------------------|------------------------------------------------------|
| `PC_PORT_NUM`      | default port number                                  |
| `PC_SOCKET_PATH`   | Unix socket path; setting it turns socket mode on    |
| `PC_LOG_FILE`      | path of the log file (default: in the temp directory)|
| `PROC_COMP_CONFIG` | configuration directory for settings and themes      |

## Library

- `procompose.api.create_app(project, use_logger)` builds a Flask application
  serving an object that implements `procompose.project.IProject`.
  `start_http_server_with_tcp(use_logger, port, project)` and
  `start_http_server_with_unix_socket(use_logger, unix_socket, project)` serve
  it in a background thread. Routes: `/live`, `/hostname`, `/processes`,
  `/process/<name>`, `/process/info/<name>`, `/process/ports/<name>`,
  `/process/logs/<name>/<endOffset>/<limit>`, `/process/stop/<name>`,
  `/processes/stop`, `/process/start/<name>`, `/process/restart/<name>`,
  `/process/scale/<name>/<scale>`, `/project/stop`, `/project/state`, and the
  websocket log stream `/process/logs/ws?name=&offset=&follow=`. Request
  logging is only on when `PC_DEBUG_MODE` is set.
- `procompose.client.new_tcp_client(host, port, log_length)` and
  `new_uds_client(sock_path, log_length)` return a `PcClient`, which
  implements `IProject` against a remote server; server errors raise
  `ClientError`. `LogClient` reads a process's log stream.
- `procompose.command` starts child processes: `build_command`,
  `build_pty_command`, `build_command_shell_arg_context`,
  `default_shell_config` and `validate_shell_config`, with `CmdWrapper.stop`
  signalling a child or its whole process group.
- `procompose.admitter` has `NamespaceAdmitter` and `DisabledProcAdmitter`
  for choosing which process configurations take part.
- `procompose.config` holds defaults, `Flags`, and the user `Settings`
  (`settings.yaml` in the configuration directory).
- `procompose.styles` has `Color`, `Styles` and `Themes`. No theme files ship
  with the package; `Themes(themes_dir=...)` loads `*-theme.yaml` files from a
  directory, plus a custom `theme.yaml` from the configuration directory.

## What this package does not do

There is no project runner: nothing here reads a project file, starts the
configured processes in dependency order, restarts them or keeps their logs,
so there is no command that brings a project up. `IProject` is an interface;
apart from `PcClient` the package has no implementation of it to hand to the
server. There is no terminal UI either; the styles and settings are only data
for one.
import dataclasses

import pytest

from procompose.project import IProject, ProjectOpts


_OPERATIONS = {
    "shut_down_project",
    "is_remote",
    "error_for_secs",
    "get_host_name",
    "get_project_state",
    "get_log_length",
    "get_logs_and_subscribe",
    "unsubscribe_logger",
    "get_process_log",
    "get_lexicographic_process_names",
    "get_process_info",
    "get_process_state",
    "get_processes_state",
    "stop_process",
    "stop_processes",
    "start_process",
    "restart_process",
    "scale_process",
    "get_process_ports",
}


class _Complete(IProject):
    def __init__(self, opts):
        self.opts = opts
        self.shut = False

    def shut_down_project(self):
        self.shut = True

    def is_remote(self):
        return False

    def error_for_secs(self):
        return 0

    def get_host_name(self):
        return "host-a"

    def get_project_state(self, check_mem):
        return {"mem": check_mem}

    def get_log_length(self):
        return 7

    def get_logs_and_subscribe(self, name, observer):
        observer.append(name)

    def unsubscribe_logger(self, name, observer):
        observer.remove(name)

    def get_process_log(self, name, offset_from_end, limit):
        return [name] * limit

    def get_lexicographic_process_names(self):
        return sorted(self.opts.processes_to_run)

    def get_process_info(self, name):
        return {"name": name}

    def get_process_state(self, name):
        return {"name": name}

    def get_processes_state(self):
        return []

    def stop_process(self, name):
        return None

    def stop_processes(self, names):
        return list(names)

    def start_process(self, name):
        return None

    def restart_process(self, name):
        return None

    def scale_process(self, name, scale):
        return None

    def get_process_ports(self, name):
        return {"name": name}


def test_interface_cannot_be_instantiated():
    with pytest.raises(TypeError):
        IProject()


def test_partial_implementation_is_rejected():
    class Partial(IProject):
        def __init__(self, opts):
            self.opts = opts

        def is_remote(self):
            return True

    opts = ProjectOpts(processes_to_run=["web"])
    with pytest.raises(TypeError):
        Partial(opts)
    assert opts.processes_to_run == ["web"]


def test_interface_declares_every_operation():
    assert set(IProject.__abstractmethods__) == _OPERATIONS
    project = _Complete(ProjectOpts())
    assert project.opts.is_tui_on is False
    assert project.opts.processes_to_run == []


def test_complete_implementation_works():
    project = _Complete(ProjectOpts(processes_to_run=["b", "a"]))
    observers = []
    project.get_logs_and_subscribe("web", observers)
    assert observers == ["web"]
    project.unsubscribe_logger("web", observers)
    assert observers == []
    assert project.stop_processes(["x", "y"]) == ["x", "y"]
    assert project.get_lexicographic_process_names() == ["a", "b"]


def test_project_opts_defaults_are_independent():
    first = ProjectOpts()
    second = ProjectOpts()
    first.processes_to_run.append("web")
    first.main_process_args.append("--flag")
    assert second.processes_to_run == []
    assert second.main_process_args == []
    assert first.no_deps is False
    assert first.main_process == ""


def test_project_opts_replace_keeps_other_fields():
    opts = ProjectOpts(project="proj", processes_to_run=["a"], is_tui_on=True)
    changed = dataclasses.replace(opts, no_deps=True, is_ordered_shut_down=True)
    assert changed.project == "proj"
    assert changed.processes_to_run == ["a"]
    assert changed.is_tui_on is True
    assert changed.no_deps is True
    assert changed.is_ordered_shut_down is True
    assert opts.no_deps is False
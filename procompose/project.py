"""The interface a user interface or API uses to drive a project."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class IProject(ABC):
    """Operations on a project, whether it runs here or on a remote server."""

    @abstractmethod
    def shut_down_project(self) -> None:
        """Stop all processes of the project."""

    @abstractmethod
    def is_remote(self) -> bool:
        """Whether the project runs in another process."""

    @abstractmethod
    def error_for_secs(self) -> int:
        """Seconds since the project became unreachable, 0 when reachable."""

    @abstractmethod
    def get_host_name(self) -> str:
        """Host name of the machine running the project."""

    @abstractmethod
    def get_project_state(self, check_mem: bool) -> Any:
        """Summary of the project, with memory usage when ``check_mem``."""

    @abstractmethod
    def get_log_length(self) -> int:
        """Number of log lines kept for each process."""

    @abstractmethod
    def get_logs_and_subscribe(self, name: str, observer: Any) -> None:
        """Hand the current log of ``name`` to ``observer`` and keep it updated."""

    @abstractmethod
    def unsubscribe_logger(self, name: str, observer: Any) -> None:
        """Stop sending log lines of ``name`` to ``observer``."""

    @abstractmethod
    def get_process_log(self, name: str, offset_from_end: int, limit: int) -> list[str]:
        """Log lines of ``name``; a ``limit`` of 0 reads to the end."""

    @abstractmethod
    def get_lexicographic_process_names(self) -> list[str]:
        """Process names in sorted order."""

    @abstractmethod
    def get_process_info(self, name: str) -> Any:
        """Configuration of process ``name``."""

    @abstractmethod
    def get_process_state(self, name: str) -> Any:
        """State of process ``name``."""

    @abstractmethod
    def get_processes_state(self) -> Any:
        """States of all processes."""

    @abstractmethod
    def stop_process(self, name: str) -> None:
        """Stop process ``name``."""

    @abstractmethod
    def stop_processes(self, names: list[str]) -> list[str]:
        """Stop the given processes and return the names that were stopped."""

    @abstractmethod
    def start_process(self, name: str) -> None:
        """Start process ``name``."""

    @abstractmethod
    def restart_process(self, name: str) -> None:
        """Restart process ``name``."""

    @abstractmethod
    def scale_process(self, name: str, scale: int) -> None:
        """Run ``scale`` replicas of process ``name``."""

    @abstractmethod
    def get_process_ports(self, name: str) -> Any:
        """Ports that process ``name`` listens on."""


@dataclass
class ProjectOpts:
    """Options for building a project runner."""

    project: Any = None
    processes_to_run: list[str] = field(default_factory=list)
    no_deps: bool = False
    main_process: str = ""
    main_process_args: list[str] = field(default_factory=list)
    is_tui_on: bool = False
    is_ordered_shut_down: bool = False
"""Filters that decide which configured processes take part in a run."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class Admitter(ABC):
    """Decides whether a process configuration is admitted to the project."""

    @abstractmethod
    def admit(self, proc: Any) -> bool:
        """Return True when ``proc`` should be kept."""


class DisabledProcAdmitter(Admitter):
    """Rejects processes that are marked as disabled."""

    def admit(self, proc: Any) -> bool:
        return not proc.disabled


@dataclass
class NamespaceAdmitter(Admitter):
    """Admits only processes whose namespace is enabled.

    An empty list of namespaces admits everything.
    """

    enabled_namespaces: list[str] = field(default_factory=list)

    def admit(self, proc: Any) -> bool:
        if not self.enabled_namespaces:
            return True
        return proc.namespace in self.enabled_namespaces
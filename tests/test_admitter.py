from dataclasses import dataclass

import pytest

from procompose.admitter import Admitter, DisabledProcAdmitter, NamespaceAdmitter


@dataclass
class FakeProcess:
    namespace: str = ""
    disabled: bool = False


@pytest.mark.parametrize(
    "namespaces, proc_namespace, expected",
    [
        ([], "", True),
        (None, "", True),
        (["test"], "not-test", False),
        (["test"], "test", True),
        (["not-test", "test"], "test", True),
    ],
    ids=[
        "no namespace",
        "nil namespace",
        "mismatched namespace",
        "matched namespace",
        "matched namespaces",
    ],
)
def test_namespace_admitter(namespaces, proc_namespace, expected):
    admitter = NamespaceAdmitter(enabled_namespaces=namespaces)
    assert admitter.admit(FakeProcess(namespace=proc_namespace)) is expected


def test_namespace_admitter_default_admits_all():
    assert NamespaceAdmitter().admit(FakeProcess(namespace="anything")) is True


@pytest.mark.parametrize("disabled, expected", [(True, False), (False, True)])
def test_disabled_admitter(disabled, expected):
    assert DisabledProcAdmitter().admit(FakeProcess(disabled=disabled)) is expected


def test_admitter_is_abstract():
    with pytest.raises(TypeError):
        Admitter()
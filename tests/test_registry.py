import pytest

from cdk_compose.defaults import default_configuration
from cdk_compose.errors import (
    DuplicateNameError,
    KindMismatchError,
    UnresolvedNameError,
)
from cdk_compose.registry import Handle, NamedRegistry


@pytest.fixture
def registry():
    return NamedRegistry()


def queue_handle(name):
    return Handle(name, "queue", default_configuration("queue"))


def test_insert_and_lookup(registry):
    handle = queue_handle("orders")
    registry.insert("orders", handle)
    assert registry.lookup("orders", "queue") is handle
    assert registry.lookup("orders", ("queue", "topic")) is handle


def test_duplicate_name_whatever_the_kind(registry):
    registry.insert("orders", queue_handle("orders"))
    with pytest.raises(DuplicateNameError) as err:
        registry.insert("orders", Handle("orders", "topic", default_configuration("topic")))
    assert err.value.name == "orders"
    assert err.value.existing_kind == "queue"
    assert registry.lookup("orders", "queue").kind == "queue"


def test_unresolved_name(registry):
    with pytest.raises(UnresolvedNameError) as err:
        registry.lookup("orders", "queue")
    assert err.value.name == "orders"


def test_kind_mismatch(registry):
    registry.insert("orders", queue_handle("orders"))
    with pytest.raises(KindMismatchError) as err:
        registry.lookup("orders", "table")
    assert err.value.expected == frozenset({"table"})
    assert err.value.actual == "queue"


def test_insertion_order(registry):
    for name in ("b", "a", "c"):
        registry.insert(name, queue_handle(name))
    assert list(registry) == ["b", "a", "c"]
    assert [h.name for h in registry.handles()] == ["b", "a", "c"]
    assert len(registry) == 3
    assert "a" in registry
    assert "z" not in registry

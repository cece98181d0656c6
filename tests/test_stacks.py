import pytest

from cdk_compose.backends.dry_run import DryRunBackend
from cdk_compose.context import StackContext, compose_stack
from cdk_compose.errors import UnresolvedNameError
from cdk_compose.stacks import orders_stack


@pytest.fixture
def manifest():
    return compose_stack("orders", orders_stack.declare)


def test_every_kind_is_declared(manifest):
    kinds = {r.kind for r in manifest.resources()}
    assert kinds == {
        "table", "function", "queue", "topic", "certificate", "bucket", "role",
    }


def test_every_relationship_is_declared(manifest):
    relationships = [r.kind for r in manifest.relationships()]
    assert relationships.count("grant") == 4
    assert relationships.count("subscription") == 2
    assert relationships.count("address_subscription") == 1
    assert relationships.count("dead_letter") == 1
    assert relationships.count("event_source") == 2


def test_dead_letter_link_follows_its_queue(manifest):
    names = [getattr(u, "name", u.kind) for u in manifest.units]
    assert names.index("orders-dlq") < names.index("orders") < names.index("dead_letter")
    link = manifest.relationships()[0]
    assert link.kind == "dead_letter"
    assert link.attribute("max_receives") == 5


def test_composition_is_deterministic(manifest):
    assert compose_stack("orders", orders_stack.declare) == manifest


def test_dry_run_accepts_manifest(manifest):
    plan = DryRunBackend().provision(manifest)
    assert len(plan.steps) == len(manifest.units)


def test_relationships_need_resources_first():
    with pytest.raises(UnresolvedNameError):
        with StackContext("orders") as orders:
            orders_stack.declare_relationships(orders)

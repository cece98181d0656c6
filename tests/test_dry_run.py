import pytest

from cdk_compose.backends.dry_run import DryRunBackend
from cdk_compose.backends.protocol import provision_all
from cdk_compose.context import StackManifest, StackProps, compose_stack
from cdk_compose.errors import DuplicateNameError, UnresolvedNameError
from cdk_compose.units import ResourceDeclaration


@pytest.fixture
def backend():
    return DryRunBackend()


def test_plan_follows_manifest_order(backend, users_stack):
    plan = backend.provision(users_stack.manifest)
    assert plan.stack_name == "users"
    assert plan.describe() == [
        "create table users",
        "create function users-api",
        "link grant users -> users-api",
    ]


def test_plan_as_dict(backend, users_stack):
    steps = backend.provision(users_stack.manifest).as_dict()["steps"]
    assert steps[0]["action"] == "create"
    assert steps[0]["details"]["partition_key"] == ("id", "STRING")
    assert steps[2] == {
        "action": "link",
        "kind": "grant",
        "target": ["users", "users-api"],
        "details": {"access": "read-write"},
    }


def test_relationship_before_resource_is_rejected(backend, users_stack):
    units = users_stack.manifest.units
    reordered = StackManifest("users", StackProps(), (units[0], units[2], units[1]))
    with pytest.raises(UnresolvedNameError) as err:
        backend.provision(reordered)
    assert err.value.name == "users-api"


def test_duplicate_resource_is_rejected(backend, users_stack):
    units = users_stack.manifest.units
    doubled = StackManifest("users", StackProps(), (units[0], units[0]))
    with pytest.raises(DuplicateNameError):
        backend.provision(doubled)


def test_not_a_unit(backend):
    with pytest.raises(TypeError):
        backend.provision(StackManifest("bad", StackProps(), ("users",)))


def test_manifest_can_be_provisioned_twice(backend, users_stack):
    manifest = users_stack.manifest
    assert backend.provision(manifest) == backend.provision(manifest)
    assert all(isinstance(u, ResourceDeclaration) for u in manifest.units[:2])


def test_provision_all(backend):
    manifests = [
        compose_stack(name, lambda s: s.queue("orders"))
        for name in ("a", "b")
    ]
    plans = provision_all(backend, manifests)
    assert [p.stack_name for p in plans] == ["a", "b"]
    assert plans[0].steps == plans[1].steps

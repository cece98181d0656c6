"""Module to define the contract between the composer and a backend.

A backend receives the manifest of a closed stack and materializes its units
in the order given: a ResourceDeclaration always precedes every relationship
that references it, and backends must not reorder units.
"""
from typing import Any, Iterable, List, Protocol

from cdk_compose.context import StackManifest


class ProvisioningBackend(Protocol):
    """Anything that can materialize a stack manifest."""

    def provision(self, manifest: StackManifest) -> Any:
        ...


def provision_all(
    backend: ProvisioningBackend,
    manifests: Iterable[StackManifest]
) -> List[Any]:
    """Provision several stacks with one backend, in the given order."""
    return [backend.provision(manifest) for manifest in manifests]

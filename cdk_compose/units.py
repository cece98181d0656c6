"""Module to define the materialization units handed to a backend.

A stack's declaration produces an ordered list of units. Each unit is either
a ResourceDeclaration or a RelationshipDeclaration; relationships only ever
carry Handles, never names, and always come after the declarations of every
resource they reference.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from cdk_compose.defaults import Configuration
from cdk_compose.registry import Handle


@dataclass(frozen=True)
class ResourceDeclaration:
    """A resolved (name, kind, configuration) triple."""

    handle: Handle

    @property
    def name(self) -> str:
        return self.handle.name

    @property
    def kind(self) -> str:
        return self.handle.kind

    @property
    def configuration(self) -> Configuration:
        return self.handle.configuration


@dataclass(frozen=True)
class RelationshipDeclaration:
    """A resolved link between handles.

    `roles` and `handles` are parallel tuples: handles[i] plays roles[i].
    `attributes` holds (name, value) pairs.
    """

    kind: str
    roles: Tuple[str, ...]
    handles: Tuple[Handle, ...]
    attributes: Tuple[Tuple[str, Any], ...] = ()

    def participant(self, role: str) -> Optional[Handle]:
        for role_name, handle in zip(self.roles, self.handles):
            if role_name == role:
                return handle
        return None

    def attribute(self, name: str, default: Any = None) -> Any:
        for attribute_name, value in self.attributes:
            if attribute_name == name:
                return value
        return default

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(handle.name for handle in self.handles)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "relationship": self.kind,
            "participants": {
                role: handle.name
                for role, handle in zip(self.roles, self.handles)
            },
            "attributes": dict(self.attributes),
        }


MaterializationUnit = Union[ResourceDeclaration, RelationshipDeclaration]

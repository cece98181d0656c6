"""Module to define Handles and the per-stack Named Registry.

The registry is the single source of truth for the names declared in one
stack. It only supports insert and lookup: entries are never replaced or
removed while the stack is being declared.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Union

import structlog

from cdk_compose.defaults import Configuration
from cdk_compose.errors import (
    DuplicateNameError,
    KindMismatchError,
    UnresolvedNameError,
)

logger = structlog.get_logger()

KindSelector = Union[str, Iterable[str]]


@dataclass(frozen=True)
class Handle:
    """Resolved, read-only reference to a declared resource."""

    name: str
    kind: str
    configuration: Configuration


def accepted_kinds(expected: KindSelector) -> frozenset:
    """Normalise a kind name or a collection of kind names to a frozenset."""
    if isinstance(expected, str):
        return frozenset([expected])
    return frozenset(expected)


class NamedRegistry:
    """Insertion-ordered mapping of logical name to Handle for one stack."""

    def __init__(self) -> None:
        self._handles: Dict[str, Handle] = {}

    def insert(self, name: str, handle: Handle) -> None:
        """Register `handle` under `name`.

        Raises:
            DuplicateNameError: `name` is already registered, whatever its
                kind.
        """
        self.check_available(name)
        self._handles[name] = handle
        logger.debug("name_registered", name=name, kind=handle.kind)

    def check_available(self, name: str) -> None:
        """Raise DuplicateNameError if `name` is already registered."""
        existing = self._handles.get(name)
        if existing is not None:
            raise DuplicateNameError(name, existing.kind)

    def lookup(self, name: str, expected_kind: KindSelector) -> Handle:
        """Return the handle registered under `name`.

        Raises:
            UnresolvedNameError: nothing is registered under `name` yet.
            KindMismatchError: the registered kind is not one of
                `expected_kind`.
        """
        handle = self._handles.get(name)
        if handle is None:
            raise UnresolvedNameError(name)
        accepted = accepted_kinds(expected_kind)
        if handle.kind not in accepted:
            raise KindMismatchError(name, accepted, handle.kind)
        return handle

    def handles(self) -> List[Handle]:
        return list(self._handles.values())

    def __contains__(self, name: str) -> bool:
        return name in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._handles))

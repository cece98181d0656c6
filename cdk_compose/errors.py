"""Module to define the composition errors.

Every error is raised synchronously to the caller that made the offending
declaration. None of them are retried or recovered from inside the
composition layer: they all describe a mistake in the stack declaration.
"""
from typing import Iterable, Optional, Union


class CompositionError(Exception):
    """Base class for all stack composition errors."""


class UnknownKindError(CompositionError):
    """A resource kind has no registered default configuration."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"Unknown resource kind '{kind}'")


class DuplicateNameError(CompositionError):
    """A logical name was declared twice within one stack."""

    def __init__(self, name: str, existing_kind: str) -> None:
        self.name = name
        self.existing_kind = existing_kind
        super().__init__(
            f"Name '{name}' is already declared in this stack "
            f"as a {existing_kind}"
        )


class UnresolvedNameError(CompositionError):
    """A name was referenced before (or without) being declared."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Name '{name}' is not declared in this stack "
            "(resources must be declared before they are referenced)"
        )


class KindMismatchError(CompositionError):
    """A name was referenced where a different resource kind is required.

    Without `role`, `actual` is the kind the name is registered as. With
    `role`, the participant was offered as kind `actual` for a relationship
    role that only accepts `expected`.
    """

    def __init__(
        self,
        name: str,
        expected: Union[str, Iterable[str]],
        actual: str,
        role: Optional[str] = None
    ) -> None:
        self.name = name
        self.expected = (
            frozenset([expected]) if isinstance(expected, str)
            else frozenset(expected)
        )
        self.actual = actual
        self.role = role
        accepted = " or ".join(sorted(self.expected))
        if role is None:
            message = f"'{name}' is a {actual}, expected {accepted}"
        else:
            message = (
                f"Role '{role}' accepts {accepted}, "
                f"'{name}' was given as {actual}"
            )
        super().__init__(message)


class RelationshipArityError(CompositionError):
    """A relationship was given the wrong number of participants."""

    def __init__(self, relationship: str, expected: str, actual: int) -> None:
        self.relationship = relationship
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Relationship '{relationship}' takes {expected} "
            f"participants, got {actual}"
        )


class ContextClosedError(CompositionError):
    """A declaration was attempted on a stack that is no longer open."""

    def __init__(self, stack: str, state: str = "closed") -> None:
        self.stack = stack
        self.state = state
        super().__init__(f"Stack '{stack}' is {state}")


class InvalidOverrideError(CompositionError):
    """An override names an unknown field or uses the wrong variant."""

    def __init__(self, kind: str, field: str, reason: str) -> None:
        self.kind = kind
        self.field = field
        super().__init__(f"Invalid override of {kind}.{field}: {reason}")


class MissingFieldError(CompositionError):
    """A required field has no value after overrides were applied."""

    def __init__(self, kind: str, field: str) -> None:
        self.kind = kind
        self.field = field
        super().__init__(f"{kind}.{field} is required")


class InvalidRelationshipError(CompositionError):
    """A relationship's attributes do not fit its resolved participants."""

    def __init__(self, relationship: str, reason: str) -> None:
        self.relationship = relationship
        self.reason = reason
        super().__init__(f"Invalid {relationship}: {reason}")

"""Module to resolve relationship declarations against a stack's registry.

A relationship (grant, subscription, dead-letter linkage, event source) names
its participants; resolution turns each name into a Handle using the registry
as it stands at the moment of declaration. Names declared later in the block
are not visible, so the units of a stack always form a graph consistent with
declaration order and need no cycle detection.

Resolution is all-or-nothing: every participant is looked up and every
attribute validated before the declaration is appended to the stack.
"""
from dataclasses import dataclass
from itertools import permutations
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import structlog

from cdk_compose.defaults import freeze
from cdk_compose.errors import (
    InvalidRelationshipError,
    KindMismatchError,
    RelationshipArityError,
)
from cdk_compose.registry import Handle, KindSelector, accepted_kinds
from cdk_compose.units import RelationshipDeclaration

if TYPE_CHECKING:
    from cdk_compose.context import StackContext

logger = structlog.get_logger()

Participant = Union[Tuple[str, KindSelector], Handle]
Validator = Callable[[str, Dict[str, Handle], Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class Role:
    """Define a participant position of a relationship."""

    name: str
    kinds: Tuple[str, ...]
    optional: bool = False


def _no_attributes(relationship, bound, attributes):
    _reject_unknown(relationship, attributes, ())
    return {}


@dataclass(frozen=True)
class RelationshipKind:
    """Define a relationship: its ordered roles and attribute validator.

    Optional roles must come after every required role. When `unique_role`
    is set, a handle may play that role in at most one relationship of this
    kind per stack.
    """

    name: str
    roles: Tuple[Role, ...]
    validate: Validator = _no_attributes
    unique_role: Optional[str] = None

    @property
    def required_count(self) -> int:
        return sum(1 for role in self.roles if not role.optional)

    @property
    def arity(self) -> str:
        if self.required_count == len(self.roles):
            return str(len(self.roles))
        return f"{self.required_count} to {len(self.roles)}"

    def role(self, name: str) -> Role:
        for role in self.roles:
            if role.name == name:
                return role
        raise KeyError(name)


def declare_relationship(
    context: "StackContext",
    relationship: str,
    participants: Sequence[Participant],
    **attributes: Any
) -> RelationshipDeclaration:
    """Resolve a relationship and append it to the context's units.

    Args:
        context: The open stack the relationship belongs to.
        relationship: The relationship kind, e.g. "grant".
        participants: Ordered (name, expected kind) pairs, one per role.
        attributes: Relationship specific attributes, e.g. access="read".

    Returns:
        The appended RelationshipDeclaration.

    Raises:
        ContextClosedError: the context is no longer open.
        RelationshipArityError: wrong number of participants.
        KindMismatchError: an expected kind does not fit its role, or the
            registered resource is of another kind.
        UnresolvedNameError: a participant is not declared (yet).
        InvalidRelationshipError: unknown relationship kind, attributes
            that do not fit the participants, or a participant that already
            plays the relationship's unique role, e.g. a second dead-letter
            queue for one source.
    """
    context.ensure_open()
    kind = context.relationship_kind(relationship)
    declaration = resolve_relationship(
        kind,
        participants,
        context.registry.lookup,
        attributes,
    )
    _check_unique(kind, declaration, context.units)
    context.append_unit(declaration)
    logger.debug(
        "relationship_declared",
        stack=context.name,
        relationship=relationship,
        participants=list(declaration.names),
    )
    return declaration


def resolve_relationship(
    kind: RelationshipKind,
    participants: Sequence[Participant],
    lookup: Callable[[str, KindSelector], Handle],
    attributes: Mapping[str, Any],
) -> RelationshipDeclaration:
    """Build a RelationshipDeclaration without touching any stack state."""
    count = len(participants)
    if not kind.required_count <= count <= len(kind.roles):
        raise RelationshipArityError(kind.name, kind.arity, count)

    handles = []
    for role, participant in zip(kind.roles, participants):
        if isinstance(participant, Handle):
            _check_role(kind, role, participant.name, {participant.kind})
            handles.append(participant)
            continue
        name, expected = participant
        expected_kinds = accepted_kinds(expected)
        _check_role(kind, role, name, expected_kinds)
        handles.append(lookup(name, expected_kinds))

    roles = tuple(role.name for role in kind.roles[:count])
    bound = dict(zip(roles, handles))
    validated = kind.validate(kind.name, bound, dict(attributes))
    return RelationshipDeclaration(
        kind.name,
        roles,
        tuple(handles),
        tuple((key, freeze(value)) for key, value in validated.items()),
    )


def order_by_role(
    kind: RelationshipKind,
    participants_by_kind: Mapping[str, str]
) -> Tuple[Tuple[str, str], ...]:
    """Order keyword participants (kind=name) into the kind's role order.

    Picks the first arrangement, starting from the given order, in which
    every participant's kind fits its role. When none fits, the given order
    is kept so that resolution reports the mismatch.
    """
    given = tuple(
        (name, resource_kind)
        for resource_kind, name in participants_by_kind.items()
    )
    if len(given) <= len(kind.roles):
        for ordering in permutations(given):
            if all(
                resource_kind in role.kinds
                for role, (_, resource_kind) in zip(kind.roles, ordering)
            ):
                return ordering
    return given


def _check_role(kind, role, name, expected_kinds):
    if not expected_kinds <= set(role.kinds):
        raise KindMismatchError(
            name,
            role.kinds,
            " or ".join(sorted(expected_kinds)),
            role=f"{kind.name}.{role.name}",
        )


def _check_unique(kind, declaration, units):
    """Reject a second relationship of `kind` for the same unique participant."""
    if kind.unique_role is None:
        return
    handle = declaration.participant(kind.unique_role)
    if handle is None:
        return
    for unit in units:
        if (
            isinstance(unit, RelationshipDeclaration)
            and unit.kind == kind.name
            and unit.participant(kind.unique_role) == handle
        ):
            raise InvalidRelationshipError(
                kind.name,
                f"{handle.kind} '{handle.name}' already has a {kind.name} "
                f"relationship as {kind.unique_role}"
            )


def _reject_unknown(relationship, attributes, allowed):
    unknown = sorted(set(attributes) - set(allowed))
    if unknown:
        raise InvalidRelationshipError(
            relationship, f"unexpected attributes {unknown}"
        )


def _config(handle: Handle, name: str) -> Any:
    return handle.configuration.get(name)


GRANT_ACCESS = {
    "table": ("read", "write", "read-write", "full", "stream-read"),
    "bucket": ("read", "write", "read-write", "delete"),
    "queue": ("send", "consume", "purge", "read-write"),
    "topic": ("publish",),
    "function": ("invoke",),
}


def _validate_grant(relationship, bound, attributes):
    _reject_unknown(relationship, attributes, ("access",))
    resource = bound["resource"]
    access = attributes.get("access")
    if access is None:
        raise InvalidRelationshipError(relationship, "access is required")
    allowed = GRANT_ACCESS[resource.kind]
    if access not in allowed:
        raise InvalidRelationshipError(
            relationship,
            f"access '{access}' is not valid for {resource.kind} "
            f"'{resource.name}', expected one of {list(allowed)}"
        )
    if access == "stream-read" and _config(resource, "stream") is None:
        raise InvalidRelationshipError(
            relationship, f"table '{resource.name}' has no stream"
        )
    return {"access": access}


def _validate_subscription(relationship, bound, attributes):
    _reject_unknown(
        relationship, attributes, ("filter_policy", "raw_message_delivery")
    )
    topic = bound["topic"]
    endpoint = bound["endpoint"]
    dead_letter = bound.get("dead_letter")
    topic_fifo = bool(_config(topic, "fifo"))

    if endpoint.kind == "queue":
        if bool(_config(endpoint, "fifo")) != topic_fifo:
            raise InvalidRelationshipError(
                relationship,
                f"topic '{topic.name}' and queue '{endpoint.name}' must both "
                "be FIFO or both be standard"
            )
    elif topic_fifo:
        raise InvalidRelationshipError(
            relationship,
            f"FIFO topic '{topic.name}' can only deliver to FIFO queues"
        )

    if dead_letter is not None and bool(_config(dead_letter, "fifo")) != topic_fifo:
        raise InvalidRelationshipError(
            relationship,
            f"dead-letter queue '{dead_letter.name}' must match the FIFO "
            f"setting of topic '{topic.name}'"
        )

    raw = bool(attributes.get("raw_message_delivery", False))
    if raw and endpoint.kind != "queue":
        raise InvalidRelationshipError(
            relationship, "raw message delivery needs a queue endpoint"
        )

    filter_policy = attributes.get("filter_policy")
    if filter_policy is not None:
        filter_policy = _filter_policy(relationship, filter_policy)

    return {"filter_policy": filter_policy, "raw_message_delivery": raw}


def _filter_policy(relationship, policy):
    if not isinstance(policy, Mapping) or not policy:
        raise InvalidRelationshipError(
            relationship, "filter policy must be a non-empty mapping"
        )
    normalised = {}
    for attribute, values in policy.items():
        values = [values] if isinstance(values, str) else list(values)
        if not values or not all(isinstance(v, str) for v in values):
            raise InvalidRelationshipError(
                relationship,
                f"filter policy '{attribute}' needs one or more strings"
            )
        normalised[attribute] = values
    return normalised


ADDRESS_PROTOCOLS = ("email", "sms", "http", "https")


def _validate_address_subscription(relationship, bound, attributes):
    _reject_unknown(relationship, attributes, ("protocol", "address"))
    topic = bound["topic"]
    protocol = attributes.get("protocol")
    address = attributes.get("address")
    if protocol not in ADDRESS_PROTOCOLS:
        raise InvalidRelationshipError(
            relationship,
            f"protocol must be one of {list(ADDRESS_PROTOCOLS)}"
        )
    if not address:
        raise InvalidRelationshipError(relationship, "address is required")
    if protocol in ("http", "https") and not address.startswith(f"{protocol}://"):
        raise InvalidRelationshipError(
            relationship, f"address must be a {protocol}:// url"
        )
    if _config(topic, "fifo"):
        raise InvalidRelationshipError(
            relationship,
            f"FIFO topic '{topic.name}' can only deliver to FIFO queues"
        )
    return {"protocol": protocol, "address": address}


MAX_RECEIVES_RANGE = (1, 1000)


def _validate_dead_letter(relationship, bound, attributes):
    _reject_unknown(relationship, attributes, ("max_receives",))
    source = bound["source"]
    target = bound["target"]
    max_receives = attributes.get("max_receives")
    low, high = MAX_RECEIVES_RANGE
    if not isinstance(max_receives, int) or not low <= max_receives <= high:
        raise InvalidRelationshipError(
            relationship,
            f"max_receives must be an integer from {low} to {high}"
        )
    if source.name == target.name:
        raise InvalidRelationshipError(
            relationship,
            f"queue '{source.name}' cannot be its own dead-letter queue"
        )
    if bool(_config(source, "fifo")) != bool(_config(target, "fifo")):
        raise InvalidRelationshipError(
            relationship,
            f"queue '{source.name}' and dead-letter queue '{target.name}' "
            "must both be FIFO or both be standard"
        )
    return {"max_receives": max_receives}


def _validate_event_source(relationship, bound, attributes):
    _reject_unknown(relationship, attributes, ("batch_size",))
    source = bound["source"]
    batch_size = attributes.get("batch_size", 10)
    limit = 10 if source.kind == "queue" and _config(source, "fifo") else 10000
    if not isinstance(batch_size, int) or not 1 <= batch_size <= limit:
        raise InvalidRelationshipError(
            relationship, f"batch_size must be an integer from 1 to {limit}"
        )
    if source.kind == "table" and _config(source, "stream") is None:
        raise InvalidRelationshipError(
            relationship, f"table '{source.name}' has no stream"
        )
    return {"batch_size": batch_size}


GRANT = RelationshipKind(
    "grant",
    (
        Role("resource", tuple(GRANT_ACCESS)),
        Role("grantee", ("function", "role")),
    ),
    _validate_grant,
)

SUBSCRIPTION = RelationshipKind(
    "subscription",
    (
        Role("topic", ("topic",)),
        Role("endpoint", ("queue", "function")),
        Role("dead_letter", ("queue",), optional=True),
    ),
    _validate_subscription,
)

ADDRESS_SUBSCRIPTION = RelationshipKind(
    "address_subscription",
    (Role("topic", ("topic",)),),
    _validate_address_subscription,
)

DEAD_LETTER = RelationshipKind(
    "dead_letter",
    (
        Role("source", ("queue",)),
        Role("target", ("queue",)),
    ),
    _validate_dead_letter,
    unique_role="source",
)

EVENT_SOURCE = RelationshipKind(
    "event_source",
    (
        Role("source", ("queue", "table")),
        Role("function", ("function",)),
    ),
    _validate_event_source,
)

DEFAULT_RELATIONSHIPS: Dict[str, RelationshipKind] = {
    kind.name: kind
    for kind in (
        GRANT,
        SUBSCRIPTION,
        ADDRESS_SUBSCRIPTION,
        DEAD_LETTER,
        EVENT_SOURCE,
    )
}

"""Module to define the Stack Context and the resource builder.

A StackContext is the scope of one stack declaration. It owns the stack's
Named Registry and the ordered list of materialization units, and is passed
explicitly to (or used as the receiver of) every declaration:

    with stack("orders") as orders:
        orders.queue("orders-dlq")
        orders.queue("orders", dead_letter_target="orders-dlq", max_receives=5)
        orders.table("users", partition_key=("id", "STRING"))
        orders.function("users-api", handler="index.handler",
                        runtime="python3.12", code="lambda/users")
        orders.grant(table="users", function="users-api", access="read-write")

    manifest = orders.manifest

The context is open while the block runs, closed once it completes, and
aborted if the block raises. Only a closed context yields a manifest.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
)

import structlog

from cdk_compose.defaults import Override, overrides_from_fields, resolve
from cdk_compose.errors import (
    ContextClosedError,
    InvalidOverrideError,
    InvalidRelationshipError,
    MissingFieldError,
    UnresolvedNameError,
)
from cdk_compose.kinds import DEFAULT_KINDS, KindCatalogue
from cdk_compose.registry import Handle, KindSelector, NamedRegistry
from cdk_compose.relationships import (
    DEFAULT_RELATIONSHIPS,
    Participant,
    RelationshipKind,
    declare_relationship,
    order_by_role,
    resolve_relationship,
)
from cdk_compose.units import (
    MaterializationUnit,
    RelationshipDeclaration,
    ResourceDeclaration,
)

logger = structlog.get_logger()


class StackState(Enum):
    """Lifecycle states of a StackContext."""

    OPEN = "open"
    CLOSED = "closed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class StackProps:
    """Define stack level settings handed through to the backend."""

    account: Optional[str] = None
    region: Optional[str] = None
    description: Optional[str] = None
    termination_protection: bool = False
    removal_policy: str = "DESTROY"
    physical_names: bool = False
    tags: Tuple[Tuple[str, str], ...] = field(default=())


@dataclass(frozen=True)
class StackManifest:
    """The fully resolved, ordered output of a closed stack."""

    stack_name: str
    props: StackProps
    units: Tuple[MaterializationUnit, ...]

    def resources(self) -> List[ResourceDeclaration]:
        return [u for u in self.units if isinstance(u, ResourceDeclaration)]

    def relationships(self) -> List[RelationshipDeclaration]:
        return [u for u in self.units if isinstance(u, RelationshipDeclaration)]

    def handle(self, name: str) -> Handle:
        for resource in self.resources():
            if resource.name == name:
                return resource.handle
        raise UnresolvedNameError(name)


class StackContext:
    """Scope of one stack declaration: registry plus ordered units."""

    def __init__(
        self,
        name: str,
        props: Optional[StackProps] = None,
        catalogue: KindCatalogue = DEFAULT_KINDS,
        relationships: Optional[Dict[str, RelationshipKind]] = None,
    ) -> None:
        self.name = name
        self.props = props or StackProps()
        self.catalogue = catalogue
        self.relationships = (
            DEFAULT_RELATIONSHIPS if relationships is None else relationships
        )
        self.registry = NamedRegistry()
        self.state = StackState.OPEN
        self._units: List[MaterializationUnit] = []
        self._manifest: Optional[StackManifest] = None
        logger.debug("stack_opened", stack=name)

    def __enter__(self) -> "StackContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.state is not StackState.OPEN:
            return False
        if exc_type is None:
            self.close()
        else:
            self.abort(exc)
        return False

    @property
    def units(self) -> Tuple[MaterializationUnit, ...]:
        return tuple(self._units)

    @property
    def manifest(self) -> StackManifest:
        if self._manifest is None:
            raise ContextClosedError(self.name, f"{self.state.value}, not closed")
        return self._manifest

    def ensure_open(self) -> None:
        if self.state is not StackState.OPEN:
            raise ContextClosedError(self.name, self.state.value)

    def append_unit(self, unit: MaterializationUnit) -> None:
        self.ensure_open()
        self._units.append(unit)

    def relationship_kind(self, name: str) -> RelationshipKind:
        try:
            return self.relationships[name]
        except KeyError:
            raise InvalidRelationshipError(
                name, "unknown relationship kind"
            ) from None

    def close(self) -> StackManifest:
        """Close the stack and return its manifest. Only allowed once."""
        self.ensure_open()
        self.state = StackState.CLOSED
        self._manifest = StackManifest(self.name, self.props, tuple(self._units))
        logger.debug("stack_closed", stack=self.name, units=len(self._units))
        return self._manifest

    def abort(self, error: Optional[BaseException] = None) -> None:
        """Discard the stack: no manifest, no further declarations."""
        self.ensure_open()
        self.state = StackState.ABORTED
        logger.warning(
            "stack_aborted",
            stack=self.name,
            error=type(error).__name__ if error else None,
            units=len(self._units),
        )

    def lookup(self, name: str, kind: KindSelector) -> Handle:
        return self.registry.lookup(name, kind)

    def declare(
        self,
        name: str,
        kind: str,
        *overrides: Override,
        **fields: Any
    ) -> Handle:
        """Declare a resource from explicit overrides and/or field values.

        Keyword fields are applied after the positional overrides.
        """
        self.ensure_open()
        resource_kind = self.catalogue.get(kind)
        return declare_resource(
            self,
            name,
            kind,
            overrides + overrides_from_fields(resource_kind, **fields),
        )

    def table(self, name: str, *overrides: Override, **fields: Any) -> Handle:
        return self.declare(name, "table", *overrides, **fields)

    def function(self, name: str, *overrides: Override, **fields: Any) -> Handle:
        return self.declare(name, "function", *overrides, **fields)

    def queue(self, name: str, *overrides: Override, **fields: Any) -> Handle:
        return self.declare(name, "queue", *overrides, **fields)

    def topic(self, name: str, *overrides: Override, **fields: Any) -> Handle:
        return self.declare(name, "topic", *overrides, **fields)

    def certificate(self, name: str, *overrides: Override, **fields: Any) -> Handle:
        return self.declare(name, "certificate", *overrides, **fields)

    def bucket(self, name: str, *overrides: Override, **fields: Any) -> Handle:
        return self.declare(name, "bucket", *overrides, **fields)

    def role(self, name: str, *overrides: Override, **fields: Any) -> Handle:
        return self.declare(name, "role", *overrides, **fields)

    def relate(
        self,
        relationship: str,
        *participants: Participant,
        **attributes: Any
    ) -> RelationshipDeclaration:
        return declare_relationship(self, relationship, participants, **attributes)

    def grant(self, access: str, **participants: str) -> RelationshipDeclaration:
        """Grant `access` on a resource to a function or role.

        Participants are given by kind, e.g.
        grant(table="users", function="users-api", access="read-write").
        """
        ordered = order_by_role(self.relationship_kind("grant"), participants)
        return self.relate("grant", *ordered, access=access)

    def subscribe(
        self,
        topic: str,
        queue: Optional[str] = None,
        function: Optional[str] = None,
        dead_letter_queue: Optional[str] = None,
        filter_policy: Optional[Dict[str, Iterable[str]]] = None,
        raw_message_delivery: bool = False,
    ) -> RelationshipDeclaration:
        """Subscribe exactly one queue or function to a topic."""
        self.ensure_open()
        participants = [
            (topic, "topic"),
            _one_participant(
                "subscription", "endpoint", queue=queue, function=function
            ),
        ]
        if dead_letter_queue is not None:
            participants.append((dead_letter_queue, "queue"))
        return self.relate(
            "subscription",
            *participants,
            filter_policy=filter_policy,
            raw_message_delivery=raw_message_delivery,
        )

    def notify(self, topic: str, protocol: str, address: str) -> RelationshipDeclaration:
        """Subscribe an email address, phone number or url to a topic."""
        return self.relate(
            "address_subscription",
            (topic, "topic"),
            protocol=protocol,
            address=address,
        )

    def dead_letter(
        self,
        source: str,
        target: str,
        max_receives: int
    ) -> RelationshipDeclaration:
        return self.relate(
            "dead_letter",
            (source, "queue"),
            (target, "queue"),
            max_receives=max_receives,
        )

    def event_source(
        self,
        function: str,
        queue: Optional[str] = None,
        table: Optional[str] = None,
        batch_size: int = 10,
    ) -> RelationshipDeclaration:
        """Trigger a function from exactly one queue or table stream."""
        self.ensure_open()
        source = _one_participant(
            "event_source", "source", queue=queue, table=table
        )
        return self.relate(
            "event_source",
            source,
            (function, "function"),
            batch_size=batch_size,
        )


def _one_participant(relationship: str, role: str, **candidates: Optional[str]):
    """Return the single (name, kind) given among `candidates`."""
    given = [(name, kind) for kind, name in candidates.items() if name is not None]
    if len(given) != 1:
        raise InvalidRelationshipError(
            relationship,
            f"{role} needs exactly one of {sorted(candidates)}, "
            f"got {len(given)}"
        )
    return given[0]


def declare_resource(
    context: StackContext,
    name: str,
    kind: str,
    overrides: Iterable[Override] = ()
) -> Handle:
    """Resolve a resource and register it in the context.

    The registry insert happens before the ResourceDeclaration is appended,
    and relationships declared through link fields follow the declaration.
    Nothing is registered or appended when any step fails.

    Raises:
        ContextClosedError: the context is no longer open.
        UnknownKindError: `kind` is not in the context's catalogue.
        DuplicateNameError: `name` is already declared in this stack.
        InvalidOverrideError, MissingFieldError: the overrides do not fit
            the kind's schema, or a link attribute is set without its link
            field.
        UnresolvedNameError, KindMismatchError, InvalidRelationshipError:
            a link field does not resolve.
    """
    context.ensure_open()
    resource_kind = context.catalogue.get(kind)
    context.registry.check_available(name)

    configuration = resolve(kind, overrides, context.catalogue)
    handle = Handle(name, kind, configuration)

    links = []
    for link in resource_kind.links:
        target = configuration.get(link.field)
        if target is None:
            for attribute in link.attributes:
                if configuration.get(attribute) is not None:
                    raise InvalidOverrideError(
                        kind, attribute, f"only valid together with {link.field}"
                    )
            continue
        attributes = {}
        for attribute in link.attributes:
            value = configuration.get(attribute)
            if value is None:
                raise MissingFieldError(kind, attribute)
            attributes[attribute] = value
        links.append(
            resolve_relationship(
                context.relationship_kind(link.relationship),
                [handle, (target, link.target_kinds)],
                context.registry.lookup,
                attributes,
            )
        )

    context.registry.insert(name, handle)
    context.append_unit(ResourceDeclaration(handle))
    logger.debug("resource_declared", stack=context.name, name=name, kind=kind)
    for declaration in links:
        context.append_unit(declaration)
        logger.debug(
            "relationship_declared",
            stack=context.name,
            relationship=declaration.kind,
            participants=list(declaration.names),
        )
    return handle


def stack(
    name: str,
    props: Optional[StackProps] = None,
    catalogue: KindCatalogue = DEFAULT_KINDS,
) -> StackContext:
    """Open a StackContext, for use as `with stack("name") as s:`."""
    return StackContext(name, props, catalogue)


def compose_stack(
    name: str,
    declare: Callable[[StackContext], Any],
    props: Optional[StackProps] = None,
    catalogue: KindCatalogue = DEFAULT_KINDS,
) -> StackManifest:
    """Run a declaration function inside a fresh context, return its manifest."""
    with StackContext(name, props, catalogue) as context:
        declare(context)
    return context.manifest

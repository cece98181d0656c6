"""Module to define resource kinds and their secure default configuration.

A ResourceKind is a tag ("table", "queue", ...) plus the schema of fields a
declaration of that kind can override. Each field carries its default value,
which together make up the kind's baseline configuration. Fields are either
replaced by an override (last write wins) or accumulated (every override
appends, in declaration order).

The built-in kinds start from production defaults: on-demand billing and
point in time recovery for tables, tracing and bounded concurrency for
functions, encryption and TLS-only access for queues, topics and buckets,
DNS validation for certificates.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Tuple

from cdk_compose.errors import UnknownKindError


@dataclass(frozen=True)
class FieldSpec:
    """Define a configuration field of a resource kind."""

    name: str
    default: Any = None
    accumulate: bool = False
    required: bool = False


@dataclass(frozen=True)
class LinkField:
    """Define a field whose value is the logical name of another resource.

    Setting the field on a declaration declares `relationship` between the
    new resource and the named target, copying `attributes` (configuration
    field names) onto the relationship.
    """

    field: str
    relationship: str
    target_kinds: Tuple[str, ...]
    attributes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResourceKind:
    """Define a resource kind: its tag, field schema and link fields."""

    name: str
    fields: Tuple[FieldSpec, ...]
    links: Tuple[LinkField, ...] = ()

    def field_spec(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def has_field(self, name: str) -> bool:
        return any(spec.name == name for spec in self.fields)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)


@dataclass
class KindCatalogue:
    """Registry of the resource kinds known to a composition."""

    kinds: Dict[str, ResourceKind] = field(default_factory=dict)

    def register(self, kind: ResourceKind) -> ResourceKind:
        if kind.name in self.kinds:
            raise ValueError(f"Resource kind '{kind.name}' already registered")
        self.kinds[kind.name] = kind
        return kind

    def get(self, name: str) -> ResourceKind:
        try:
            return self.kinds[name]
        except KeyError:
            raise UnknownKindError(name) from None

    def extended(self, *kinds: ResourceKind) -> "KindCatalogue":
        """Return a copy of this catalogue with extra kinds registered."""
        catalogue = KindCatalogue(dict(self.kinds))
        for kind in kinds:
            catalogue.register(kind)
        return catalogue

    def __contains__(self, name: str) -> bool:
        return name in self.kinds

    def __iter__(self) -> Iterator[str]:
        return iter(self.kinds)


def _kind(name: str, *fields: FieldSpec, links=(), removal_policy=None):
    common = (
        FieldSpec("removal_policy", removal_policy),
        FieldSpec("tags", accumulate=True),
    )
    return ResourceKind(name, tuple(fields) + common, tuple(links))


TABLE = _kind(
    "table",
    FieldSpec("partition_key", required=True),  # (attribute name, type)
    FieldSpec("sort_key"),
    FieldSpec("billing_mode", "PAY_PER_REQUEST"),
    FieldSpec("point_in_time_recovery", True),
    FieldSpec("encryption", "AWS_MANAGED"),
    FieldSpec("stream"),
    FieldSpec("time_to_live_attribute"),
    FieldSpec("global_secondary_indexes", accumulate=True),
    removal_policy="RETAIN",
)

FUNCTION = _kind(
    "function",
    FieldSpec("handler", required=True),
    FieldSpec("runtime", required=True),
    FieldSpec("code", required=True),  # asset path
    FieldSpec("memory_size", 512),
    FieldSpec("timeout", 30),
    FieldSpec("reserved_concurrent_executions", 10),
    FieldSpec("tracing", "ACTIVE"),
    FieldSpec("logging_format", "JSON"),
    FieldSpec("retry_attempts", 2),
    FieldSpec("max_event_age", 21600),
    FieldSpec("description"),
    FieldSpec("environment", accumulate=True),  # (key, value) pairs
    FieldSpec("policy_statements", accumulate=True),
    FieldSpec("layers", accumulate=True),
)

QUEUE = _kind(
    "queue",
    FieldSpec("visibility_timeout", 30),
    FieldSpec("retention_period", 345600),
    FieldSpec("fifo", False),
    FieldSpec("content_based_deduplication", False),
    FieldSpec("delivery_delay", 0),
    FieldSpec("encryption", "SQS_MANAGED"),
    FieldSpec("enforce_ssl", True),
    FieldSpec("dead_letter_target"),
    FieldSpec("max_receives"),
    links=(
        LinkField(
            "dead_letter_target",
            "dead_letter",
            ("queue",),
            ("max_receives",),
        ),
    ),
)

TOPIC = _kind(
    "topic",
    FieldSpec("display_name"),
    FieldSpec("fifo", False),
    FieldSpec("content_based_deduplication", False),
    FieldSpec("enforce_ssl", True),
)

CERTIFICATE = _kind(
    "certificate",
    FieldSpec("domain_name", required=True),
    FieldSpec("validation", "DNS"),
    FieldSpec("key_algorithm", "RSA_2048"),
    FieldSpec("subject_alternative_names", accumulate=True),
)

BUCKET = _kind(
    "bucket",
    FieldSpec("block_public_access", "BLOCK_ALL"),
    FieldSpec("encryption", "S3_MANAGED"),
    FieldSpec("enforce_ssl", True),
    FieldSpec("versioned", True),
    FieldSpec("auto_delete_objects", False),
    FieldSpec("lifecycle_rules", accumulate=True),
    removal_policy="RETAIN",
)

ROLE = _kind(
    "role",
    FieldSpec("assumed_by", required=True),  # service principal
    FieldSpec("description"),
    FieldSpec("managed_policies", accumulate=True),
    FieldSpec("policy_statements", accumulate=True),
)

DEFAULT_KINDS = KindCatalogue()
for _builtin in (TABLE, FUNCTION, QUEUE, TOPIC, CERTIFICATE, BUCKET, ROLE):
    DEFAULT_KINDS.register(_builtin)

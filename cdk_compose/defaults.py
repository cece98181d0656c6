"""Module to merge caller overrides onto a kind's default configuration.

Overrides are a closed set of operations: Set replaces the value of a
replace-field, Append adds items to an accumulating field. Using the wrong
operation for a field is an error rather than a silent merge, so the
precedence of every field is fixed by its schema and not by call order
conventions.

resolve() is pure: it reads the kind catalogue and the override sequence and
nothing else, so equal inputs always produce equal Configurations.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Sequence, Tuple, Union

from cdk_compose.errors import InvalidOverrideError, MissingFieldError
from cdk_compose.kinds import DEFAULT_KINDS, KindCatalogue, ResourceKind


@dataclass(frozen=True)
class Set:
    """Replace the value of a field. Later Sets of the same field win."""

    field: str
    value: Any


class Append:
    """Append items to an accumulating field, after any earlier items."""

    __slots__ = ("field", "items")

    def __init__(self, field: str, *items: Any) -> None:
        self.field = field
        self.items = tuple(items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Append):
            return NotImplemented
        return (self.field, self.items) == (other.field, other.items)

    def __hash__(self) -> int:
        return hash((Append, self.field, self.items))

    def __repr__(self) -> str:
        return f"Append({self.field!r}, *{self.items!r})"


Override = Union[Set, Append]


@dataclass(frozen=True)
class Configuration:
    """Resolved, immutable configuration of one resource.

    `values` holds (field, value) pairs in schema order. Accumulating fields
    hold tuples.
    """

    kind: str
    values: Tuple[Tuple[str, Any], ...]

    def __getitem__(self, name: str) -> Any:
        for field_name, value in self.values:
            if field_name == name:
                return value
        raise KeyError(name)

    def __contains__(self, name: str) -> bool:
        return any(field_name == name for field_name, _ in self.values)

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)


def default_configuration(
    kind: str,
    catalogue: KindCatalogue = DEFAULT_KINDS
) -> Configuration:
    """Return the baseline configuration of a kind with no overrides."""
    resource_kind = catalogue.get(kind)
    return Configuration(kind, tuple(_baseline(resource_kind).items()))


def resolve(
    kind: str,
    overrides: Iterable[Override] = (),
    catalogue: KindCatalogue = DEFAULT_KINDS
) -> Configuration:
    """Apply overrides, in order, on top of the defaults of `kind`.

    Raises:
        UnknownKindError: `kind` is not in the catalogue.
        InvalidOverrideError: an override names an unknown field, or uses
            Set on an accumulating field or Append on a replace field.
        MissingFieldError: a required field is still unset afterwards.
    """
    resource_kind = catalogue.get(kind)
    values = _baseline(resource_kind)

    for override in overrides:
        _apply(resource_kind, values, override)

    for spec in resource_kind.fields:
        if spec.required and values[spec.name] is None:
            raise MissingFieldError(kind, spec.name)

    return Configuration(kind, tuple(values.items()))


def overrides_from_fields(
    kind: ResourceKind,
    **fields: Any
) -> Tuple[Override, ...]:
    """Turn keyword arguments into override operations.

    Replace fields become Set; accumulating fields become Append with each
    element of the given iterable (mappings contribute their items).
    """
    overrides = []
    for name, value in fields.items():
        if not kind.has_field(name):
            raise InvalidOverrideError(kind.name, name, "unknown field")
        if kind.field_spec(name).accumulate:
            overrides.append(Append(name, *_items(value)))
        else:
            overrides.append(Set(name, value))
    return tuple(overrides)


def _baseline(kind: ResourceKind) -> Dict[str, Any]:
    return {
        spec.name: tuple(spec.default or ()) if spec.accumulate else spec.default
        for spec in kind.fields
    }


def _apply(kind: ResourceKind, values: Dict[str, Any], override: Override):
    if not isinstance(override, (Set, Append)):
        raise TypeError(f"Not an override operation: {override!r}")
    if override.field not in values:
        raise InvalidOverrideError(kind.name, override.field, "unknown field")

    accumulating = kind.field_spec(override.field).accumulate
    if isinstance(override, Set):
        if accumulating:
            raise InvalidOverrideError(
                kind.name, override.field,
                "accumulating field, use Append"
            )
        values[override.field] = freeze(override.value)
    else:
        if not accumulating:
            raise InvalidOverrideError(
                kind.name, override.field,
                "replace field, use Set"
            )
        values[override.field] = values[override.field] + tuple(
            freeze(item) for item in override.items
        )


def _items(value: Any) -> Sequence[Any]:
    if isinstance(value, Mapping):
        return list(value.items())
    if isinstance(value, (str, bytes)):
        return [value]
    return list(value)


def freeze(value: Any) -> Any:
    """Convert lists and dicts to tuples so configurations stay hashable."""
    if isinstance(value, Mapping):
        return tuple((key, freeze(item)) for key, item in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(item) for item in value)
    return value

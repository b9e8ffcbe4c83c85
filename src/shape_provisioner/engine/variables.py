"""Output references in descriptor inputs.

Descriptors use ``${KEY}`` to refer to a value published by an earlier
resource (or persisted in the config record by a previous run), e.g. a
firewall rule living in ``${NODE_RESOURCE_GROUP}``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, TypeVar

from shape_provisioner.engine.errors import UnresolvedInputError
from shape_provisioner.resources.base import ResourceDescriptor

if TYPE_CHECKING:
    from collections.abc import Mapping

D = TypeVar("D", bound=ResourceDescriptor)

_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Lifecycle fields are never templated.
_STATIC_FIELDS = frozenset({"kind", "name", "depends_on", "criticality"})


def find_references(value: Any) -> set[str]:
    """Collect every ``${KEY}`` name used in *value*, recursively."""
    if isinstance(value, str):
        return set(_REF.findall(value))
    if isinstance(value, dict):
        return set().union(*(find_references(v) for v in value.values()))
    if isinstance(value, list):
        return set().union(*(find_references(v) for v in value))
    return set()


def resolve_variables(value: Any, variables: Mapping[str, str]) -> Any:
    """Replace ``${KEY}`` references in string values, recursively.

    Unknown references are left untouched.
    """
    if isinstance(value, str):
        return _REF.sub(lambda m: variables.get(m.group(1), m.group(0)), value)
    if isinstance(value, dict):
        return {k: resolve_variables(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_variables(v, variables) for v in value]
    return value


def descriptor_references(desired: ResourceDescriptor) -> set[str]:
    data = desired.model_dump(exclude=set(_STATIC_FIELDS))
    return find_references(data)


def resolve_descriptor(desired: D, outputs: Mapping[str, str]) -> D:
    """Return a copy of *desired* with every reference substituted.

    Raises:
        UnresolvedInputError: If a reference names a key missing from *outputs*.
    """
    missing = sorted(descriptor_references(desired) - set(outputs))
    if missing:
        raise UnresolvedInputError(desired.name, missing)

    data = desired.model_dump()
    for field, value in data.items():
        if field not in _STATIC_FIELDS:
            data[field] = resolve_variables(value, outputs)
    return type(desired).model_validate(data)

"""
Base domain model with camelCase JSON snapshots.

Every result object exposed by Gatekeeper (violations, validation results,
score records, workflow summaries...) derives from BaseDomainModel so that
metrics and dashboard readouts serialize the same way everywhere.
"""

from __future__ import annotations

from dataclasses import fields
from enum import Enum
from typing import Any, Dict


def to_camel_case(snake_str: str) -> str:
    """
    Convert snake_case to camelCase.

    Examples:
        >>> to_camel_case("response_time_ns")
        'responseTimeNs'
        >>> to_camel_case("passed")
        'passed'
    """
    components = snake_str.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def _serialize(value: Any) -> Any:
    if isinstance(value, BaseDomainModel):
        return value.to_json()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


class BaseDomainModel:
    """
    Base class for all domain models.

    A plain mixin rather than a dataclass so that frozen and mutable
    dataclasses can both derive from it.

    - to_json() serializes to camelCase keys
    - Enum values are serialized by value
    - Nested models, lists and dicts are serialized recursively
    """

    def to_json(self) -> Dict[str, Any]:
        """
        Serialize to a JSON-compatible dictionary (camelCase).

        Returns:
            Dictionary with camelCase keys and plain values
        """
        result: Dict[str, Any] = {}

        for field in fields(self):
            if not field.repr:
                continue
            result[to_camel_case(field.name)] = _serialize(getattr(self, field.name))

        return result

"""
Structural validation of query and subscription definitions.

Each check returns the first violation found as a readable message that
locates the offending element (``queries[2].objects`` and so on), or
``None`` when the definitions are well formed. Validation runs once, before
any connection is attempted.
"""

from collections.abc import Mapping
from typing import Any, Optional


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


def _check_string_mapping(mapping: Mapping, where: str) -> Optional[str]:
    for key, value in mapping.items():
        if not _is_text(key):
            return f"{where} has a key that is not a non-empty string: {key!r}"
        if not _is_text(value):
            return f"{where}[{key!r}] is not a non-empty string"
    return None


def validate_queries(queries: Any) -> Optional[str]:
    """Validate the raw ``queries`` list."""
    if queries is None:
        return None
    if not isinstance(queries, list):
        return "queries is not a list"

    for i, query in enumerate(queries):
        if not isinstance(query, Mapping):
            return f"queries[{i}] is not an object"
        if not _is_text(query.get("name")):
            return f"queries[{i}].name missing or not a string"

        objects = query.get("objects")
        if not isinstance(objects, Mapping):
            return f"queries[{i}].objects missing or not an object"

        for pattern, attr_spec in objects.items():
            if not _is_text(pattern):
                return f"queries[{i}].objects has a key that is not a non-empty string: {pattern!r}"
            if not isinstance(attr_spec, Mapping):
                return f"queries[{i}].objects[{pattern!r}] is not an object"
            error = _check_string_mapping(attr_spec, f"queries[{i}].objects[{pattern!r}]")
            if error:
                return error
    return None


def validate_subscriptions(subscriptions: Any) -> Optional[str]:
    """Validate the raw ``subscriptions`` list."""
    if subscriptions is None:
        return None
    if not isinstance(subscriptions, list):
        return "subscriptions is not a list"

    for i, subscription in enumerate(subscriptions):
        if not isinstance(subscription, Mapping):
            return f"subscriptions[{i}] is not an object"
        if not _is_text(subscription.get("name")):
            return f"subscriptions[{i}].name missing or not a string"
        if not _is_text(subscription.get("object")):
            return f"subscriptions[{i}].object missing or not a string"

        attributes = subscription.get("attributes")
        if not isinstance(attributes, Mapping):
            return f"subscriptions[{i}].attributes missing or not an object"
        error = _check_string_mapping(attributes, f"subscriptions[{i}].attributes")
        if error:
            return error
    return None


def validate_definitions(queries: Any, subscriptions: Any) -> Optional[str]:
    """Validate both lists; queries are checked first."""
    return validate_queries(queries) or validate_subscriptions(subscriptions)

"""
Attribute-path traversal and value coercion.

Shared by queries (attribute values) and subscriptions (notification
payloads): a value is followed down the remaining path segments and the
leaf is written to the result map in a flat, record-friendly form.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Union

from ..common.exceptions import DegradedCondition
from ..models.values import Composite, Null, Value

logger = logging.getLogger(__name__)

OutputValue = Union[int, float, str]


def coerce_scalar(value: Any) -> Optional[OutputValue]:
    """Coerce a leaf value: booleans to 1/0, numbers kept, the rest stringified."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    return str(value)


def resolve(
    value: Value,
    output_field: str,
    path: Sequence[str],
    result: Dict[str, Any],
    log: Optional[logging.Logger] = None,
    log_extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Follow ``path`` into ``value`` and write the leaf(s) into ``result``.

    A composite reached with an empty path is flattened: every sub-field is
    written as ``<output_field>_<sub-field>``, recursively. Traversal
    problems are logged and leave ``result`` untouched for that field.
    ``log_extra`` is merged into the extra fields of those log lines.
    """
    log = log or logger
    log_extra = log_extra or {}

    if isinstance(value, Composite):
        if not path:
            for sub_name, sub_value in value.items():
                resolve(sub_value, f"{output_field}_{sub_name}", (), result, log, log_extra)
            return

        sub_name = path[0]
        if sub_name not in value:
            log.warning(
                f"Parsing attribute {output_field} failed: no field named {sub_name}",
                extra={**log_extra, "field": output_field, "condition": DegradedCondition.ATTRIBUTE_TRAVERSAL.value},
            )
            return
        resolve(value[sub_name], output_field, path[1:], result, log, log_extra)
        return

    if path:
        log.warning(
            f"Parsing attribute {output_field} failed: non-composite value observed when trying to "
            f"traverse the leftover path: {'.'.join(path)}",
            extra={**log_extra, "field": output_field, "condition": DegradedCondition.ATTRIBUTE_TRAVERSAL.value},
        )
        return

    if isinstance(value, Null):
        return

    coerced = coerce_scalar(value.value)
    if coerced is not None:
        result[output_field] = coerced

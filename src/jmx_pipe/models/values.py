"""
Attribute value model.

Raw values handed over by a registry client are converted once, at the
connector boundary, into one of three shapes: a scalar, a composite (an
ordered set of named sub-values) or null. Attribute-path traversal works
purely on these shapes.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Tuple, Union


@dataclass(frozen=True)
class Scalar:
    """A leaf value: number, boolean or anything rendered as a string."""
    value: Any


@dataclass(frozen=True)
class Composite:
    """A tree-structured value with named sub-fields, in declaration order."""
    fields: Dict[str, "Value"] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __getitem__(self, name: str) -> "Value":
        return self.fields[name]

    def items(self) -> Iterator[Tuple[str, "Value"]]:
        return iter(self.fields.items())


@dataclass(frozen=True)
class Null:
    """Absence of a value; never written to an output record."""


NULL = Null()

Value = Union[Scalar, Composite, Null]


def to_value(raw: Any) -> Value:
    """Convert a raw client value into the value model.

    Values that are already in the model are returned unchanged, mappings
    become composites (recursively) and ``None`` becomes null.
    """
    if isinstance(raw, (Scalar, Composite, Null)):
        return raw
    if raw is None:
        return NULL
    if isinstance(raw, Mapping):
        return Composite({str(k): to_value(v) for k, v in raw.items()})
    return Scalar(raw)

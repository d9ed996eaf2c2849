"""
Query and subscription definitions.

Both are loaded once from configuration, validated once and never mutated
afterwards.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

IDENTITY_PREFIX = "="


@dataclass(frozen=True)
class AttributePath:
    """
    A dot-separated attribute path such as ``HeapMemoryUsage.used``.

    The first segment names the top-level attribute; with a leading ``=`` it
    names a key property of the object name instead. The remaining segments
    descend into composite values.
    """
    attribute: str
    segments: Tuple[str, ...] = ()
    identity: bool = False

    @classmethod
    def parse(cls, path: str) -> "AttributePath":
        head, *rest = path.split(".")
        if head.startswith(IDENTITY_PREFIX):
            return cls(head[len(IDENTITY_PREFIX):], tuple(rest), True)
        return cls(head, tuple(rest), False)


class Query(BaseModel):
    """A named set of object-name patterns and the attributes to read from each.

    ``objects`` maps a pattern to an attribute spec, which in turn maps an
    attribute path to the output field name. Declaration order is kept.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    objects: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @property
    def fans_out(self) -> bool:
        """True when every resolved object produces its own record."""
        return len(self.objects) == 1


class Subscription(BaseModel):
    """A notification subscription on every object matching ``object``."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    object_pattern: str = Field(..., min_length=1, alias="object")
    attributes: Dict[str, str] = Field(default_factory=dict)

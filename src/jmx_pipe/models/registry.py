"""
Registry data models.

Object names, resolved managed objects and delivered notifications as seen
by the query executor and the notification subscriber.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

_ESCAPES = {'"': '"', '\\': '\\', '*': '*', '?': '?', 'n': '\n'}


@dataclass(frozen=True)
class ObjectName:
    """
    Parsed ``domain:key=value,...`` object name.

    Key properties keep their declared order. Quoted values are stored
    exactly as written (quotes included); use ``unquote`` to decode them.
    """
    domain: str
    properties: Tuple[Tuple[str, str], ...] = ()
    property_list_pattern: bool = False

    @classmethod
    def parse(cls, name: str) -> "ObjectName":
        if not isinstance(name, str) or ":" not in name:
            raise ValueError(f"Invalid object name (missing domain separator): {name!r}")

        domain, _, rest = name.partition(":")
        properties: List[Tuple[str, str]] = []
        list_pattern = False
        pos = 0

        while pos < len(rest):
            if rest[pos] == "*" and (pos + 1 == len(rest) or rest[pos + 1] == ","):
                list_pattern = True
                pos += 2
                continue

            eq = rest.find("=", pos)
            if eq < 0:
                raise ValueError(f"Invalid key property in object name: {name!r}")
            key = rest[pos:eq]
            if not key:
                raise ValueError(f"Empty key in object name: {name!r}")

            pos = eq + 1
            if pos < len(rest) and rest[pos] == '"':
                end = pos + 1
                while end < len(rest) and rest[end] != '"':
                    end += 2 if rest[end] == "\\" else 1
                if end >= len(rest):
                    raise ValueError(f"Unterminated quoted value in object name: {name!r}")
                value = rest[pos:end + 1]
                pos = end + 1
            else:
                end = rest.find(",", pos)
                end = len(rest) if end < 0 else end
                value = rest[pos:end]
                pos = end

            if pos < len(rest):
                if rest[pos] != ",":
                    raise ValueError(f"Unexpected character after value in object name: {name!r}")
                pos += 1

            properties.append((key, value))

        if not properties and not list_pattern:
            raise ValueError(f"Object name has no key properties: {name!r}")

        return cls(domain, tuple(properties), list_pattern)

    @property
    def key_properties(self) -> Dict[str, str]:
        return dict(self.properties)

    def get_key_property(self, key: str) -> Optional[str]:
        for k, v in self.properties:
            if k == key:
                return v
        return None

    @property
    def is_pattern(self) -> bool:
        if self.property_list_pattern or "*" in self.domain or "?" in self.domain:
            return True
        return any(_has_wildcard(v) for _, v in self.properties)

    @property
    def canonical_name(self) -> str:
        props = ",".join(f"{k}={v}" for k, v in sorted(self.properties))
        if self.property_list_pattern:
            props = f"{props},*" if props else "*"
        return f"{self.domain}:{props}"

    def __str__(self) -> str:
        parts = [f"{k}={v}" for k, v in self.properties]
        if self.property_list_pattern:
            parts.append("*")
        return f"{self.domain}:{','.join(parts)}"


def _has_wildcard(value: str) -> bool:
    escaped = False
    for ch in value:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch in "*?":
            return True
    return False


def unquote(value: str) -> str:
    """Decode a quoted key-property value (``"a\\"b"`` -> ``a"b``)."""
    if len(value) < 2 or not (value.startswith('"') and value.endswith('"')):
        raise ValueError(f"Value is not quoted: {value!r}")

    out = []
    body = value[1:-1]
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            if i + 1 >= len(body) or body[i + 1] not in _ESCAPES:
                raise ValueError(f"Bad escape sequence in quoted value: {value!r}")
            out.append(_ESCAPES[body[i + 1]])
            i += 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


@dataclass(frozen=True)
class ManagedObject:
    """A concrete object resolved from a pattern.

    ``handle`` is whatever the registry client needs to address the object
    in later calls; it defaults to the object name.
    """
    name: ObjectName
    handle: Any = None

    def __post_init__(self):
        if isinstance(self.name, str):
            object.__setattr__(self, "name", ObjectName.parse(self.name))
        if self.handle is None:
            object.__setattr__(self, "handle", self.name)


@dataclass
class Notification:
    """A notification delivered by the registry client."""
    message: Optional[str] = None
    user_data: Any = None

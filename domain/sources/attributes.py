"""Open attribute bag carried by source records.

Attributes are opaque string-keyed metadata persisted as a single text
blob, one ``name=value`` per line. A name set with an empty value is
written without the ``=``. Names starting with TRANSIENT_PREFIX only have
meaning in the study where the record was created and are dropped on
export.
"""

from __future__ import annotations

from collections.abc import Iterator

TRANSIENT_PREFIX = "-"

ATTR_SEQUENCE_DATE = "sequenceDate"
ATTR_LICENSEE = "licensee"
ATTR_IS_SHARING_HOST = "isSharingHost"
ATTR_IS_BASELINE = "isBaseline"
ATTR_IS_PRE_BASELINE = TRANSIENT_PREFIX + "isPreBaseline"
ATTR_IS_PROPOSAL = TRANSIENT_PREFIX + "isProposal"


class Attributes:
    """Mutable name/value bag with value-copy semantics."""

    __slots__ = ("_values",)

    def __init__(self, values: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = {}
        for name, value in (values or {}).items():
            self.set(name, value)

    def copy(self) -> "Attributes":
        clone = Attributes()
        clone._values = dict(self._values)
        return clone

    def get(self, name: str) -> str | None:
        """Return the value, None if unset. A flag attribute has value ''."""
        return self._values.get(name)

    def set(self, name: str, value: str | None = "") -> None:
        name = name.strip()
        if not name or "=" in name or "\n" in name:
            raise ValueError(f"Invalid attribute name: {name!r}")
        value = "" if value is None else str(value).strip()
        if "\n" in value:
            raise ValueError(f"Attribute {name} value cannot contain line breaks")
        self._values[name] = value

    def remove(self, name: str) -> str | None:
        return self._values.pop(name, None)

    def names(self) -> list[str]:
        return list(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Attributes):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Attributes({self._values!r})"

    def as_dict(self, transient: bool = True) -> dict[str, str]:
        return {
            name: value
            for name, value in self._values.items()
            if transient or not name.startswith(TRANSIENT_PREFIX)
        }

    # -----------------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------------
    def serialize(self, transient: bool = True) -> str:
        lines = []
        for name, value in self.as_dict(transient).items():
            lines.append(f"{name}={value}" if value else name)
        return "\n".join(lines)

    @classmethod
    def parse(cls, text: str | None, transient: bool = True) -> "Attributes":
        attrs = cls()
        if not text:
            return attrs
        for line in text.split("\n"):
            name, _, value = line.partition("=")
            name = name.strip()
            if not name:
                continue
            if not transient and name.startswith(TRANSIENT_PREFIX):
                continue
            attrs._values[name] = value.strip()
        return attrs

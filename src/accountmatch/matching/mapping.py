"""Explicit source-field to canonical-field mappings.

Each system names its columns differently (Dimensions uses ``cuname``,
``cuphone`` and so on).  A :class:`FieldMapping` is validated once when it is
built and then converts raw payloads into :class:`Account` values.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from accountmatch.matching.errors import FieldMappingError
from accountmatch.matching.models import CANONICAL_FIELDS, Account, System


@dataclass(frozen=True)
class FieldMapping:
    """Bidirectional ``source_field <-> canonical_field`` mapping."""

    fields: Mapping[str, str]
    _reverse: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        reverse: dict[str, str] = {}
        for source_field, canonical in self.fields.items():
            if canonical not in CANONICAL_FIELDS:
                raise FieldMappingError(
                    f"{source_field!r} maps to unknown canonical field {canonical!r}"
                )
            if canonical in reverse:
                raise FieldMappingError(
                    f"{canonical!r} is mapped from both {reverse[canonical]!r} and {source_field!r}"
                )
            reverse[canonical] = source_field
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "_reverse", MappingProxyType(reverse))

    @classmethod
    def identity(cls, canonical_fields: list[str] | None = None) -> FieldMapping:
        names = canonical_fields if canonical_fields is not None else list(CANONICAL_FIELDS)
        return cls({name: name for name in names})

    def source_field_for(self, canonical: str) -> str | None:
        return self._reverse.get(canonical)

    def to_account(self, raw: Mapping[str, Any], *, id: int | None = None) -> Account:
        """Build an :class:`Account` from a raw payload.

        Missing or null values become empty strings; everything else is
        stringified and stripped.
        """
        values: dict[str, str] = {}
        for source_field, canonical in self.fields.items():
            value = raw.get(source_field)
            values[CANONICAL_FIELDS[canonical]] = "" if value is None else str(value).strip()
        return Account(**values, id=id, raw=dict(raw))


DIMENSIONS_FIELD_MAPPING = FieldMapping(
    {
        "cucode": "AccountNumber",
        "cuname": "Name",
        "cuaddress": "BillingStreet",
        "cupostcode": "BillingPostalCode",
        "cu_country": "BillingCountry",
        "cu_address_user1": "BillingCity",
        "cuphone": "Phone",
        "cu_email": "Email",
    }
)


@dataclass(frozen=True)
class ChunkFieldMappings:
    """The mappings for all three systems, as handed to ``process_chunk``."""

    source: FieldMapping
    dimensions: FieldMapping
    salesforce: FieldMapping

    @classmethod
    def default(cls) -> ChunkFieldMappings:
        return cls(
            source=FieldMapping.identity(),
            dimensions=DIMENSIONS_FIELD_MAPPING,
            salesforce=FieldMapping.identity(),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, str]]) -> ChunkFieldMappings:
        """Build from ``{"source": {...}, "dimensions": {...}, "salesforce": {...}}``.

        Systems missing from *data* fall back to their default mapping.
        """
        defaults = cls.default()
        return cls(
            source=FieldMapping(data["source"]) if "source" in data else defaults.source,
            dimensions=(
                FieldMapping(data["dimensions"]) if "dimensions" in data else defaults.dimensions
            ),
            salesforce=(
                FieldMapping(data["salesforce"]) if "salesforce" in data else defaults.salesforce
            ),
        )

    def for_system(self, system: System) -> FieldMapping:
        return getattr(self, system.value)

"""Curated fact database.

This module provides the FactStore, a key -> FactEntry mapping of
reference data (price limits, property types, geography, seasons,
amenity standards, legal ratios, market rates, currencies) loaded
from YAML. Each entry carries its own source, confidence and
last-updated date.
"""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from staycheck.core.exceptions import ConfigurationError

DEFAULT_FACTS_PATH = Path(__file__).parent / "reference_facts.yaml"


@dataclass
class FactEntry:
    """One curated group of facts.

    Attributes:
        key: Unique identifier (e.g. "market_rates")
        category: Top-level category (property, booking, location, ...)
        subcategory: Finer grouping within the category
        facts: The reference values themselves
        source: Name of the source the facts come from
        confidence: How much the source is trusted, in [0, 1]
        last_updated: When the facts were last verified
    """
    key: str
    category: str
    subcategory: str
    facts: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    confidence: float = 0.9
    last_updated: date = field(default_factory=date.today)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    def get(self, name: str, default: Any = None) -> Any:
        return self.facts.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "category": self.category,
            "subcategory": self.subcategory,
            "source": self.source,
            "confidence": self.confidence,
            "last_updated": self.last_updated.isoformat(),
            "facts": self.facts,
        }


class FactStore:
    """Key -> FactEntry lookup table.

    Example:
        >>> store = FactStore.default()
        >>> store.get("property_types").get("valid_types")
        ['apartment', 'house', 'villa', 'studio', 'loft', 'townhouse', 'cottage']
    """

    def __init__(self, entries: list[FactEntry] | None = None) -> None:
        self._entries: dict[str, FactEntry] = {}
        for entry in entries or []:
            self.add(entry)

    @classmethod
    def default(cls, path: Path | str | None = None) -> "FactStore":
        """Load the bundled fact database, or a replacement file."""
        return cls.from_yaml(path or DEFAULT_FACTS_PATH)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "FactStore":
        """Load facts from a YAML file.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Fact database not found: {path}",
                setting_name="fact_database_path",
                setting_value=str(path),
            )

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in fact database: {e}",
                setting_name="fact_database_path",
                setting_value=str(path),
            ) from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FactStore":
        """Create a store from a dictionary with a ``facts`` list."""
        entries = []
        for item in data.get("facts", []):
            updated = item.get("last_updated", date.today())
            if isinstance(updated, str):
                updated = date.fromisoformat(updated)
            try:
                entries.append(
                    FactEntry(
                        key=item["key"],
                        category=item.get("category", "general"),
                        subcategory=item.get("subcategory", ""),
                        facts=item.get("facts") or {},
                        source=item.get("source", item["key"]),
                        confidence=float(item.get("confidence", 0.9)),
                        last_updated=updated,
                    )
                )
            except (KeyError, ValueError) as e:
                raise ConfigurationError(f"Invalid fact entry {item!r}: {e}") from e
        return cls(entries)

    def to_yaml(self) -> str:
        """Export the store to a YAML string."""
        data = {"facts": [entry.to_dict() for entry in self._entries.values()]}
        return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def add(self, entry: FactEntry) -> None:
        """Add or replace a fact entry."""
        self._entries[entry.key] = entry

    def get(self, key: str) -> FactEntry | None:
        return self._entries.get(key)

    def by_category(self, category: str) -> list[FactEntry]:
        return [e for e in self._entries.values() if e.category == category]

    def reliability_of(self, source: str, default: float = 0.85) -> float:
        """Confidence of the entry published by ``source``."""
        for entry in self._entries.values():
            if entry.source == source:
                return entry.confidence
        return default

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self):
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

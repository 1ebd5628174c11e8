"""Category catalog: static category definitions with id and name lookup.

Categories are keyed by a stable id.  A separate lowercase name → id index
is built once at load time because some stored transactions carry the
display name instead of the id; get_by_id_or_name() tries the id first
and falls back to the name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from walletwise.config import Config

OTHER = "other"
TRANSFER = "transfer"
INCOME = "income"

RESERVED_IDS = (OTHER, TRANSFER, INCOME)

DEFAULT_COLOR = "#94A3B8"

PACKAGED_CONFIG_DIR = Path(__file__).parent


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color: str = DEFAULT_COLOR
    keywords: tuple[str, ...] = field(default=())


_DEFAULT_CATALOG: CategoryCatalog | None = None


class CategoryCatalog:
    """Immutable set of categories indexed by id and by display name."""

    def __init__(self, categories: list[Category] | tuple[Category, ...]):
        self._categories = tuple(categories)
        self._by_id: dict[str, Category] = {}
        self._name_index: dict[str, str] = {}
        for cat in self._categories:
            if cat.id in self._by_id:
                raise ValueError(f"Duplicate category id: {cat.id}")
            self._by_id[cat.id] = cat
            self._name_index.setdefault(cat.name.lower(), cat.id)

        missing = [cid for cid in RESERVED_IDS if cid not in self._by_id]
        if missing:
            raise ValueError(f"Category catalog missing reserved ids: {missing}")

    @classmethod
    def default(cls) -> CategoryCatalog:
        """The packaged catalog (categories.yaml beside this module), loaded once."""
        global _DEFAULT_CATALOG
        if _DEFAULT_CATALOG is None:
            _DEFAULT_CATALOG = cls.from_config(Config(PACKAGED_CONFIG_DIR))
        return _DEFAULT_CATALOG

    @classmethod
    def from_config(cls, config: Config) -> CategoryCatalog:
        """Build a catalog from categories.yaml entries."""
        categories = []
        for entry in config.categories:
            cat_id = entry.get("id")
            if not cat_id:
                raise ValueError(f"Category entry missing id: {entry}")
            categories.append(Category(
                id=cat_id,
                name=entry.get("name", cat_id),
                color=entry.get("color", DEFAULT_COLOR),
                keywords=tuple(kw.lower() for kw in entry.get("keywords") or ()),
            ))
        return cls(categories)

    def __iter__(self):
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def get_by_id(self, category_id: str) -> Category | None:
        return self._by_id.get(category_id)

    def get_by_name(self, name: str) -> Category | None:
        """Case-insensitive exact match on display name."""
        cat_id = self._name_index.get(name.lower())
        return self._by_id[cat_id] if cat_id else None

    def get_by_id_or_name(self, value: str | None) -> Category | None:
        if not value:
            return None
        return self.get_by_id(value) or self.get_by_name(value)

    def get_default(self) -> Category:
        return self._by_id[OTHER]

    def expense_categories(self) -> list[Category]:
        return [c for c in self._categories if c.id != INCOME]

    def color_for(self, value: str | None) -> str:
        cat = self.get_by_id_or_name(value)
        return cat.color if cat else DEFAULT_COLOR

"""JSON-file persistence for families, recipes, meals, pantry and shopping lists.

The whole store is one JSON document.  Reads load a fresh snapshot; writes go
through ``StoreFile.transaction()``, which holds a per-file lock and replaces
the file atomically.
"""

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from mealcart import config
from mealcart.ingredient_normalizer import canonicalise_category, normalize_name
from mealcart.meals import PlannedMeal
from mealcart.pantry import PantryItem
from mealcart.recipes import Recipe

logger = logging.getLogger(__name__)

TABLES = ("families", "recipes", "meals", "pantry", "shopping_lists", "shopping_list_items")

_PRIORITY_RANK = {"high": 1, "normal": 2, "low": 3}

_locks: dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


class StoreError(Exception):
    """Raised when the store file cannot be read or written."""
    pass


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.RLock()
        return _locks[key]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StoreFile:
    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def load(self) -> dict[str, list[dict[str, Any]]]:
        """Return the store document; a missing file is an empty store."""
        if not self.path.exists():
            return {table: [] for table in TABLES}

        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"Invalid JSON in store file {self.path}: {e}")
        except OSError as e:
            raise StoreError(f"Cannot read store file {self.path}: {e}")

        if not isinstance(data, dict):
            raise StoreError("Store file must contain a JSON object")
        for table in TABLES:
            data.setdefault(table, [])
        return data

    def save(self, data: dict[str, list[dict[str, Any]]]) -> None:
        """Save the store document with an atomic write.

        Raises:
            StoreError: If the file cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Same directory so the rename stays on one filesystem
            temp_fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=".mealcart_tmp_",
                suffix=".json"
            )

            try:
                with os.fdopen(temp_fd, 'w') as f:
                    json.dump(data, f, indent=2)
                os.replace(temp_path, self.path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise

        except OSError as e:
            raise StoreError(f"Failed to save store to {self.path}: {e}")

    @contextmanager
    def transaction(self) -> Iterator[dict[str, list[dict[str, Any]]]]:
        """Load, let the caller mutate, then save; serialised per file."""
        with self._lock:
            data = self.load()
            yield data
            self.save(data)

    @staticmethod
    def next_id(rows: list[dict[str, Any]]) -> int:
        return max((row["id"] for row in rows), default=0) + 1


class FamilyStore:
    def __init__(self, store: StoreFile):
        self.store = store

    def get_all(self) -> list[dict[str, Any]]:
        return sorted(self.store.load()["families"], key=lambda f: f["id"])

    def ids(self) -> set[int]:
        return {row["id"] for row in self.store.load()["families"]}

    def exists(self, family_id: int) -> bool:
        return family_id in self.ids()

    def add(self, name: str) -> dict[str, Any]:
        name = str(name or "").strip()
        if not name:
            raise ValueError("Family name is required")
        with self.store.transaction() as data:
            row = {"id": StoreFile.next_id(data["families"]), "name": name, "created_at": _now()}
            data["families"].append(row)
        logger.info("Family created", extra={"family_id": row["id"]})
        return row


_RECIPE_FIELDS = ("name", "ingredients", "servings", "tags", "instructions")


class RecipeStore:
    def __init__(self, store: StoreFile):
        self.store = store

    def get_all(self, family_id: int) -> list[Recipe]:
        """Return the family's recipes ordered by name."""
        rows = [r for r in self.store.load()["recipes"] if r["family_id"] == family_id]
        return sorted((Recipe.from_dict(r) for r in rows), key=lambda r: (r.name.lower(), r.id))

    def get(self, recipe_id: int) -> Recipe | None:
        row = next((r for r in self.store.load()["recipes"] if r["id"] == recipe_id), None)
        return Recipe.from_dict(row) if row else None

    def get_by_ids(self, family_id: int, recipe_ids: Iterable[int]) -> list[Recipe]:
        """Return the recipes with the given ids, in id order.

        Records owned by another family are returned as well; the
        consolidation engine rejects cross-family references.
        """
        wanted = set(recipe_ids)
        rows = [r for r in self.store.load()["recipes"] if r["id"] in wanted]
        foreign = [r["id"] for r in rows if r["family_id"] != family_id]
        if foreign:
            logger.warning("Requested recipes owned by another family",
                           extra={"family_id": family_id, "recipe_ids": foreign})
        return sorted((Recipe.from_dict(r) for r in rows), key=lambda r: r.id)

    def add(self, recipe: dict[str, Any]) -> Recipe:
        with self.store.transaction() as data:
            row = dict(recipe, id=StoreFile.next_id(data["recipes"]))
            created = Recipe.from_dict(row)
            data["recipes"].append(created.to_dict())
        return created

    def update(self, recipe_id: int, changes: dict[str, Any]) -> Recipe | None:
        """Replace the given fields; returns None when the recipe doesn't exist.

        The owning family cannot be changed.
        """
        unknown = [k for k in changes if k not in _RECIPE_FIELDS]
        if unknown:
            raise ValueError(f"Unknown recipe fields: {', '.join(unknown)}")

        with self.store.transaction() as data:
            row = next((r for r in data["recipes"] if r["id"] == recipe_id), None)
            if row is None:
                return None
            updated = Recipe.from_dict(dict(row, **changes))
            row.update(updated.to_dict())
        return updated

    def delete(self, recipe_id: int) -> bool:
        """Delete a recipe; planned meals that used it become ad-hoc meals."""
        with self.store.transaction() as data:
            before = len(data["recipes"])
            data["recipes"] = [r for r in data["recipes"] if r["id"] != recipe_id]
            if len(data["recipes"]) == before:
                return False
            for meal in data["meals"]:
                if meal.get("recipe_id") == recipe_id:
                    meal["recipe_id"] = None
        return True


class MealStore:
    def __init__(self, store: StoreFile):
        self.store = store

    def get_all(self, family_id: int, start: date | None = None, end: date | None = None) -> list[PlannedMeal]:
        """Return the family's planned meals by date, optionally within [start, end]."""
        meals = [PlannedMeal.from_dict(m) for m in self.store.load()["meals"] if m["family_id"] == family_id]
        if start is not None:
            meals = [m for m in meals if m.scheduled_date >= start]
        if end is not None:
            meals = [m for m in meals if m.scheduled_date <= end]
        return sorted(meals, key=lambda m: (m.scheduled_date, m.id))

    def get_by_ids(self, family_id: int, meal_ids: Iterable[int]) -> list[PlannedMeal]:
        """Return the planned meals with the given ids, in id order.

        Like ``RecipeStore.get_by_ids`` this does not hide other families'
        records, so that a cross-family reference is reported rather than
        mistaken for an unknown id.
        """
        wanted = set(meal_ids)
        rows = [m for m in self.store.load()["meals"] if m["id"] in wanted]
        foreign = [m["id"] for m in rows if m["family_id"] != family_id]
        if foreign:
            logger.warning("Requested meals owned by another family",
                           extra={"family_id": family_id, "meal_ids": foreign})
        return sorted((PlannedMeal.from_dict(m) for m in rows), key=lambda m: m.id)

    def add(self, meal: dict[str, Any]) -> PlannedMeal:
        with self.store.transaction() as data:
            row = dict(meal, id=StoreFile.next_id(data["meals"]))
            created = PlannedMeal.from_dict(row)
            data["meals"].append(created.to_dict())
        return created


_PANTRY_FIELDS = {
    "name": "name",
    "quantity": "quantity",
    "unit": "unit",
    "category": "category",
    "is_low_stock": "is_low_stock",
    "isLowStock": "is_low_stock",
}


class PantryStore:
    def __init__(self, store: StoreFile):
        self.store = store

    def get_all(self, family_id: int) -> list[PantryItem]:
        """Return the family's pantry items ordered by name."""
        rows = [p for p in self.store.load()["pantry"] if p["family_id"] == family_id]
        return sorted((PantryItem.from_dict(p) for p in rows), key=lambda p: (p.name.lower(), p.id))

    def get(self, item_id: int) -> PantryItem | None:
        row = next((p for p in self.store.load()["pantry"] if p["id"] == item_id), None)
        return PantryItem.from_dict(row) if row else None

    def add(self, family_id: int, item: dict[str, Any]) -> PantryItem:
        with self.store.transaction() as data:
            row = dict(item, id=StoreFile.next_id(data["pantry"]), family_id=family_id)
            created = PantryItem.from_dict(row)
            data["pantry"].append(created.to_dict())
        return created

    def update(self, item_id: int, changes: dict[str, Any]) -> PantryItem | None:
        """Apply a partial update; returns None when the item doesn't exist."""
        unknown = [k for k in changes if k not in _PANTRY_FIELDS]
        if unknown:
            raise ValueError(f"Unknown pantry fields: {', '.join(unknown)}")

        with self.store.transaction() as data:
            row = next((p for p in data["pantry"] if p["id"] == item_id), None)
            if row is None:
                return None
            for key, value in changes.items():
                row[_PANTRY_FIELDS[key]] = value
            updated = PantryItem.from_dict(row)
            row.update(updated.to_dict())
        return updated

    def delete(self, item_id: int) -> bool:
        with self.store.transaction() as data:
            before = len(data["pantry"])
            data["pantry"] = [p for p in data["pantry"] if p["id"] != item_id]
            return len(data["pantry"]) != before


@dataclass
class ShoppingList:
    id: int
    family_id: int
    name: str
    description: str | None = None
    is_active: bool = True
    created_at: str = field(default_factory=_now)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShoppingList":
        return cls(
            id=int(data["id"]),
            family_id=int(data["family_id"]),
            name=data["name"],
            description=data.get("description"),
            is_active=bool(data.get("is_active", True)),
            created_at=data.get("created_at") or _now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "family_id": self.family_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }


@dataclass
class ShoppingListItem:
    id: int
    shopping_list_id: int
    name: str
    normalized_name: str
    quantity: str = ""
    unit: str = ""
    category: str = config.DEFAULT_CATEGORY
    aisle: str | None = None
    is_completed: bool = False
    notes: str | None = None
    source_type: str = "manual"     # "manual" | "recipe" | "recurring"
    source_id: int | None = None    # originating recipe for source_type "recipe"
    meal_ids: list[int] = field(default_factory=list)
    priority: str = "normal"
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @property
    def priority_rank(self) -> int:
        return _PRIORITY_RANK.get(self.priority, _PRIORITY_RANK["normal"])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShoppingListItem":
        source_type = data.get("source_type") or "manual"
        if source_type not in config.ITEM_SOURCE_TYPES:
            raise ValueError(f"Invalid source type: {source_type}")
        priority = data.get("priority") or "normal"
        if priority not in _PRIORITY_RANK:
            raise ValueError(f"Invalid priority: {priority}")
        name = str(data["name"]).strip()
        if not name:
            raise ValueError("Item name is required")

        return cls(
            id=int(data["id"]),
            shopping_list_id=int(data["shopping_list_id"]),
            name=name,
            normalized_name=data.get("normalized_name") or normalize_name(name),
            quantity=str(data.get("quantity") or ""),
            unit=str(data.get("unit") or ""),
            category=canonicalise_category(data.get("category")),
            aisle=data.get("aisle"),
            is_completed=bool(data.get("is_completed", False)),
            notes=data.get("notes"),
            source_type=source_type,
            source_id=data.get("source_id"),
            meal_ids=list(data.get("meal_ids") or []),
            priority=priority,
            created_at=data.get("created_at") or _now(),
            updated_at=data.get("updated_at") or _now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "shopping_list_id": self.shopping_list_id,
            "name": self.name,
            "normalized_name": self.normalized_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "category": self.category,
            "aisle": self.aisle,
            "is_completed": self.is_completed,
            "notes": self.notes,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "meal_ids": self.meal_ids,
            "priority": self.priority,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# API field name → stored field name for item updates
_ITEM_FIELDS = {
    "name": "name",
    "quantity": "quantity",
    "unit": "unit",
    "category": "category",
    "aisle": "aisle",
    "notes": "notes",
    "priority": "priority",
    "is_completed": "is_completed",
    "isCompleted": "is_completed",
}


def _apply_item_changes(row: dict[str, Any], changes: dict[str, Any]) -> ShoppingListItem:
    unknown = [k for k in changes if k not in _ITEM_FIELDS]
    if unknown:
        raise ValueError(f"Unknown shopping list item fields: {', '.join(unknown)}")

    candidate = dict(row)
    for key, value in changes.items():
        candidate[_ITEM_FIELDS[key]] = value
    if "name" in changes:
        candidate["normalized_name"] = normalize_name(str(changes["name"]))
    candidate["updated_at"] = _now()

    item = ShoppingListItem.from_dict(candidate)
    row.update(item.to_dict())
    return item


class ShoppingListStore:
    def __init__(self, store: StoreFile):
        self.store = store

    def create_list(self, family_id: int, name: str, description: str | None = None) -> ShoppingList:
        if not name or not name.strip():
            raise ValueError("Shopping list name is required")
        with self.store.transaction() as data:
            created = ShoppingList(
                id=StoreFile.next_id(data["shopping_lists"]),
                family_id=family_id,
                name=name.strip(),
                description=description,
            )
            data["shopping_lists"].append(created.to_dict())
        return created

    def get_list(self, list_id: int) -> ShoppingList | None:
        row = next((s for s in self.store.load()["shopping_lists"] if s["id"] == list_id), None)
        return ShoppingList.from_dict(row) if row else None

    def lists_for_family(self, family_id: int) -> list[ShoppingList]:
        rows = [s for s in self.store.load()["shopping_lists"] if s["family_id"] == family_id]
        return sorted((ShoppingList.from_dict(s) for s in rows), key=lambda s: s.id, reverse=True)

    def get_items(self, list_id: int) -> list[ShoppingListItem]:
        """Items of a list, high priority first, then in creation order."""
        rows = [i for i in self.store.load()["shopping_list_items"] if i["shopping_list_id"] == list_id]
        return sorted(
            (ShoppingListItem.from_dict(i) for i in rows),
            key=lambda i: (i.priority_rank, i.created_at, i.id),
        )

    def get_item(self, item_id: int) -> ShoppingListItem | None:
        row = next((i for i in self.store.load()["shopping_list_items"] if i["id"] == item_id), None)
        return ShoppingListItem.from_dict(row) if row else None

    def add_item(self, list_id: int, item: dict[str, Any]) -> ShoppingListItem:
        with self.store.transaction() as data:
            row = dict(item, id=StoreFile.next_id(data["shopping_list_items"]), shopping_list_id=list_id)
            created = ShoppingListItem.from_dict(row)
            data["shopping_list_items"].append(created.to_dict())
        return created

    def update_item(self, item_id: int, changes: dict[str, Any]) -> ShoppingListItem | None:
        """Apply a partial update; returns None when the item doesn't exist."""
        with self.store.transaction() as data:
            row = next((i for i in data["shopping_list_items"] if i["id"] == item_id), None)
            if row is None:
                return None
            return _apply_item_changes(row, changes)

    def bulk_update_items(self, updates: list[tuple[int, dict[str, Any]]]) -> list[ShoppingListItem]:
        """Apply several partial updates in one write; unknown ids are ignored."""
        updated = []
        with self.store.transaction() as data:
            rows = {i["id"]: i for i in data["shopping_list_items"]}
            for item_id, changes in updates:
                if item_id in rows:
                    updated.append(_apply_item_changes(rows[item_id], changes))
        return updated

    def delete_item(self, item_id: int) -> bool:
        with self.store.transaction() as data:
            before = len(data["shopping_list_items"])
            data["shopping_list_items"] = [i for i in data["shopping_list_items"] if i["id"] != item_id]
            return len(data["shopping_list_items"]) != before

    def item_history(self, family_id: int, name: str) -> list[ShoppingListItem]:
        """Items matching *name* across all of the family's lists, newest first."""
        key = normalize_name(name)
        data = self.store.load()
        list_ids = {s["id"] for s in data["shopping_lists"] if s["family_id"] == family_id}
        items = [
            ShoppingListItem.from_dict(i)
            for i in data["shopping_list_items"]
            if i["shopping_list_id"] in list_ids and i.get("normalized_name") == key
        ]
        return sorted(items, key=lambda i: (i.created_at, i.id), reverse=True)

    def upsert_drafts(self, list_id: int, drafts: Iterable[Any]) -> list[ShoppingListItem]:
        """Persist proposed items, keyed on (list, normalized name, unit).

        A draft whose key already exists updates that row instead of adding a
        duplicate, so a retried generate request leaves the list unchanged.
        Completion flags and aisles set by the shopper are kept.
        """
        saved = []
        with self.store.transaction() as data:
            rows = data["shopping_list_items"]
            existing = {
                (r["normalized_name"], r.get("unit") or ""): r
                for r in rows
                if r["shopping_list_id"] == list_id
            }
            for draft in drafts:
                key = (draft.normalized_name, draft.unit or "")
                values = {
                    "name": draft.name,
                    "normalized_name": draft.normalized_name,
                    "quantity": draft.display_quantity,
                    "unit": draft.unit,
                    "category": draft.category,
                    "source_type": draft.provenance.source_type,
                    "source_id": draft.provenance.source_id,
                    "meal_ids": list(draft.provenance.meal_ids),
                    "priority": draft.priority,
                    "notes": "; ".join(draft.notes) or None,
                }
                row = existing.get(key)
                if row is None:
                    row = dict(
                        values,
                        id=StoreFile.next_id(rows),
                        shopping_list_id=list_id,
                        aisle=draft.aisle,
                        created_at=_now(),
                    )
                    item = ShoppingListItem.from_dict(row)
                    rows.append(item.to_dict())
                    existing[key] = rows[-1]
                else:
                    row.update(values, updated_at=_now())
                    item = ShoppingListItem.from_dict(row)
                saved.append(item)
        logger.info("Upserted shopping list items", extra={"shopping_list_id": list_id, "item_count": len(saved)})
        return saved

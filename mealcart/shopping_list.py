"""Shopping-list generation from planned meals.

``generate_shopping_list`` is a pure function over store snapshots: it never
reads or writes a store itself, so concurrent requests for one family need no
coordination.  Persisting the proposal is the caller's job
(``ShoppingListStore.upsert_drafts``).
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from mealcart import config
from mealcart.ingredient_normalizer import canonicalise_category, normalize_name
from mealcart.ingredient_parser import IngredientParser, ParsedIngredient
from mealcart.meals import PlannedMeal
from mealcart.pantry import PantryIndex, PantryItem
from mealcart.recipes import Recipe
from mealcart.units import (
    UnitConversionAmbiguity,
    convert,
    display_unit,
    format_quantity,
    largest_unit,
    unit_family,
)

logger = logging.getLogger(__name__)

PRIORITY_NORMAL = "normal"
PRIORITY_HIGH = "high"

# Stable reason codes for SkipReport.reason
MEAL_NOT_FOUND = "meal-not-found"
MEAL_HAS_NO_RECIPE = "meal-has-no-recipe"
RECIPE_NOT_FOUND = "recipe-not-found"
RECIPE_HAS_NO_INGREDIENTS = "recipe-has-no-ingredients"

NOTE_UNIT_AMBIGUITY = "unit-conversion-ambiguity"

_parser = IngredientParser()


class ValidationError(Exception):
    """The request itself is unusable; nothing is generated."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


@dataclass(frozen=True)
class SkipReport:
    kind: str           # "meal" | "recipe"
    reference: str
    reason: str
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "reference": self.reference, "reason": self.reason, "detail": self.detail}


class PartialResolutionWarning(UserWarning):
    """Some meals or recipes could not be resolved; the rest were used."""

    def __init__(self, skipped: Iterable[SkipReport]):
        self.skipped = list(skipped)
        references = ", ".join(f"{s.kind} {s.reference} ({s.reason})" for s in self.skipped)
        super().__init__(f"Skipped {len(self.skipped)} unresolved reference(s): {references}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "PartialResolutionWarning",
            "message": str(self),
            "skipped": [s.to_dict() for s in self.skipped],
        }


@dataclass(frozen=True)
class Provenance:
    source_type: str
    recipe_ids: tuple[int, ...]
    meal_ids: tuple[int, ...]

    @property
    def source_id(self) -> int:
        """The originating recipe."""
        return self.recipe_ids[0]


@dataclass
class ShoppingListItemDraft:
    name: str
    normalized_name: str
    quantity: float | None  # None = buy it, no meaningful quantity ("as needed")
    unit: str
    category: str
    provenance: Provenance
    priority: str = PRIORITY_NORMAL
    aisle: str | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def display_quantity(self) -> str:
        return format_quantity(self.quantity)

    @property
    def label(self) -> str:
        """Human-readable line, e.g. '2 cups flour' or 'salt to taste (as needed)'."""
        if self.quantity is None:
            return f"{self.name} ({config.AS_NEEDED_LABEL})"
        parts = [self.display_quantity, display_unit(self.unit, self.quantity), self.name]
        return " ".join(p for p in parts if p)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "normalizedName": self.normalized_name,
            "quantity": round(self.quantity, config.QUANTITY_PRECISION) if self.quantity is not None else None,
            "displayQuantity": self.display_quantity,
            "unit": self.unit,
            "label": self.label,
            "category": self.category,
            "aisle": self.aisle,
            "priority": self.priority,
            "sourceType": self.provenance.source_type,
            "sourceId": self.provenance.source_id,
            "recipeIds": list(self.provenance.recipe_ids),
            "mealIds": list(self.provenance.meal_ids),
            "notes": list(self.notes),
        }


@dataclass
class ConsolidationResult:
    proposed_items: list[ShoppingListItemDraft] = field(default_factory=list)
    skipped_for_pantry: list[PantryItem] = field(default_factory=list)
    skipped: list[SkipReport] = field(default_factory=list)
    warnings: list[PartialResolutionWarning] = field(default_factory=list)
    ambiguities: list[UnitConversionAmbiguity] = field(default_factory=list)

    @property
    def items_by_category(self) -> dict[str, list[ShoppingListItemDraft]]:
        """Group proposed items by category."""
        grouped = defaultdict(list)
        for item in self.proposed_items:
            grouped[item.category].append(item)
        return dict(grouped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposedItems": [item.to_dict() for item in self.proposed_items],
            "skippedForPantry": [
                {
                    "id": p.id,
                    "name": p.name,
                    "quantity": p.quantity,
                    "unit": p.unit,
                    "category": p.category,
                    "isLowStock": p.is_low_stock,
                }
                for p in self.skipped_for_pantry
            ],
            "skipped": [s.to_dict() for s in self.skipped],
            "warnings": [w.to_dict() for w in self.warnings],
            "ambiguities": [a.to_dict() for a in self.ambiguities],
        }


@dataclass
class _Contribution:
    """One ingredient line of one planned meal, after scaling."""
    name: str
    quantity: float | None
    unit: str
    category: str | None
    recipe_id: int
    meal_id: int
    raw: str


def _is_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _validate_request(family_id: Any, meal_ids: Any, known_family_ids: Iterable[int] | None) -> list[int]:
    """Check the request shape and return meal ids de-duplicated in order."""
    if not _is_id(family_id):
        raise ValidationError(f"Invalid family id: {family_id!r}", field="familyId")
    if known_family_ids is not None and family_id not in set(known_family_ids):
        raise ValidationError(f"Unknown family: {family_id}", field="familyId")
    if isinstance(meal_ids, (str, bytes)) or not isinstance(meal_ids, Iterable):
        raise ValidationError("mealIds must be a list of meal ids", field="mealIds")
    meal_ids = list(meal_ids)
    if not meal_ids:
        raise ValidationError("mealIds must not be empty", field="mealIds")
    invalid = [m for m in meal_ids if not _is_id(m)]
    if invalid:
        raise ValidationError(f"Invalid meal ids: {invalid!r}", field="mealIds")
    return list(dict.fromkeys(meal_ids))


def _scale_factor(meal: PlannedMeal, recipe: Recipe) -> float:
    """Ratio of planned servings to the recipe's base servings (1 when either is unset)."""
    if not meal.servings or not recipe.servings or meal.servings <= 0 or recipe.servings <= 0:
        return 1.0
    return meal.servings / recipe.servings


def _contributions(meal: PlannedMeal, recipe: Recipe) -> Iterable[tuple[str, _Contribution]]:
    """Yield (group key, contribution) for each ingredient line of *recipe*."""
    factor = _scale_factor(meal, recipe)
    for text, category in recipe.ingredient_lines():
        parsed = _parser.parse(text)
        if isinstance(parsed, ParsedIngredient):
            scaled = parsed.scaled(factor)
            key = normalize_name(scaled.name)
            contribution = _Contribution(
                name=scaled.name,
                quantity=scaled.quantity,
                unit=scaled.unit,
                category=category,
                recipe_id=recipe.id,
                meal_id=meal.id,
                raw=text,
            )
        else:
            key = normalize_name(parsed.text)
            contribution = _Contribution(
                name=parsed.text,
                quantity=None,
                unit="",
                category=category,
                recipe_id=recipe.id,
                meal_id=meal.id,
                raw=text,
            )
        yield key or text.lower(), contribution


def _merge_quantities(
    entries: list[_Contribution],
) -> list[tuple[float, str, list[_Contribution]]]:
    """Merge measured contributions of one ingredient into as few lines as possible.

    Rules:
    - Entries with the same unit → summed.
    - Entries in the same measurement family (volume or weight) → converted to
      the largest unit present, then summed.
    - Everything else (counts, unitless, unknown units) → one line per unit.

    Returns (quantity, unit, contributing entries) per line, ordered by unit.
    """
    buckets: dict[str, list[_Contribution]] = defaultdict(list)
    for entry in entries:
        family = unit_family(entry.unit)
        buckets[family or f"unit:{entry.unit}"].append(entry)

    lines = []
    for bucket_key in sorted(buckets):
        bucket = buckets[bucket_key]
        units = {e.unit for e in bucket}
        if len(units) == 1:
            lines.append((sum(e.quantity for e in bucket), bucket[0].unit, bucket))
            continue
        target = largest_unit(units)
        lines.append((sum(convert(e.quantity, e.unit, target) for e in bucket), target, bucket))

    lines.sort(key=lambda line: line[1])
    return lines


def _category_for(contributions: list[_Contribution]) -> str:
    """First classification found on a contributing recipe line, else the default."""
    for c in contributions:
        if c.category:
            return canonicalise_category(c.category)
    return config.DEFAULT_CATEGORY


def _provenance(contributions: list[_Contribution]) -> Provenance:
    # The first contributing recipe is the originating one; the rest follow sorted.
    first = contributions[0].recipe_id
    others = sorted({c.recipe_id for c in contributions} - {first})
    return Provenance(
        source_type="recipe",
        recipe_ids=(first, *others),
        meal_ids=tuple(sorted({c.meal_id for c in contributions})),
    )


def _as_needed_draft(
    key: str,
    unmeasured: list[_Contribution],
    category: str,
    priority: str,
    notes: list[str],
) -> ShoppingListItemDraft:
    # Own unit key so it never merges with a unitless count of the same name
    return ShoppingListItemDraft(
        name=unmeasured[0].name,
        normalized_name=key,
        quantity=None,
        unit=config.AS_NEEDED_LABEL,
        category=category,
        provenance=_provenance(unmeasured),
        priority=priority,
        notes=list(notes),
    )


def _build_drafts(
    key: str,
    contributions: list[_Contribution],
    priority: str,
    result: ConsolidationResult,
) -> list[ShoppingListItemDraft]:
    measured = [c for c in contributions if c.quantity is not None]
    unmeasured = [c for c in contributions if c.quantity is None]
    category = _category_for(contributions)

    if not measured:
        return [_as_needed_draft(key, unmeasured, category, priority, [])]

    lines = _merge_quantities(measured)
    units = [unit for _, unit, _ in lines]
    if unmeasured:
        units.append(config.AS_NEEDED_LABEL)

    notes: list[str] = []
    if len(units) > 1:
        ambiguity = UnitConversionAmbiguity(units, normalized_name=key)
        result.ambiguities.append(ambiguity)
        notes.append(NOTE_UNIT_AMBIGUITY)
        logger.debug(str(ambiguity), extra={"ingredient": key})

    drafts = [
        ShoppingListItemDraft(
            name=bucket[0].name,
            normalized_name=key,
            quantity=quantity,
            unit=unit,
            category=category,
            provenance=_provenance(bucket),
            priority=priority,
            notes=list(notes),
        )
        for quantity, unit, bucket in lines
    ]
    if unmeasured:
        drafts.append(_as_needed_draft(key, unmeasured, category, priority, notes))
    return drafts


def generate_shopping_list(
    family_id: int,
    meal_ids: Sequence[int],
    *,
    meals: Iterable[PlannedMeal],
    recipes: Iterable[Recipe],
    pantry: Iterable[PantryItem],
    known_family_ids: Iterable[int] | None = None,
) -> ConsolidationResult:
    """Generate a pantry-aware, consolidated shopping list for planned meals.

    Each meal's recipe is scaled to the meal's servings, its ingredient lines
    are parsed and grouped by normalized name, and quantities are merged when
    their units are identical or convertible.  Incompatible units stay as
    separate lines.  Ingredients the family already has (pantry entry not
    flagged low-stock) are dropped and reported in ``skipped_for_pantry``;
    low-stock ones are kept with high priority.

    Args:
        family_id: Family the request is made for
        meal_ids: Planned meals to shop for (non-empty)
        meals: Snapshot of planned meals; may contain more than requested
        recipes: Snapshot of recipes referenced by those meals
        pantry: The family's pantry items
        known_family_ids: When given, family_id must be one of these

    Returns:
        ConsolidationResult with proposed items, pantry skips and skip reports

    Raises:
        ValidationError: If the request is malformed or references another
            family's meals or recipes
    """
    requested = _validate_request(family_id, meal_ids, known_family_ids)
    logger.debug("Generating shopping list", extra={"family_id": family_id, "meal_count": len(requested)})

    meals_by_id = {m.id: m for m in meals}
    recipes_by_id = {r.id: r for r in recipes}
    result = ConsolidationResult()

    groups: dict[str, list[_Contribution]] = defaultdict(list)
    for meal_id in requested:
        meal = meals_by_id.get(meal_id)
        if meal is None:
            result.skipped.append(SkipReport("meal", str(meal_id), MEAL_NOT_FOUND, "No planned meal with this id"))
            continue
        if meal.family_id != family_id:
            raise ValidationError(f"Meal {meal_id} does not belong to family {family_id}", field="mealIds")
        if meal.recipe_id is None:
            result.skipped.append(
                SkipReport("meal", str(meal_id), MEAL_HAS_NO_RECIPE, "Ad-hoc meal without a recipe")
            )
            continue

        recipe = recipes_by_id.get(meal.recipe_id)
        if recipe is None:
            result.skipped.append(
                SkipReport("recipe", str(meal.recipe_id), RECIPE_NOT_FOUND, f"Referenced by meal {meal_id}")
            )
            continue
        if recipe.family_id != family_id:
            raise ValidationError(
                f"Recipe {recipe.id} of meal {meal_id} does not belong to family {family_id}", field="mealIds"
            )

        contributed = False
        for key, contribution in _contributions(meal, recipe):
            groups[key].append(contribution)
            contributed = True
        if not contributed:
            result.skipped.append(
                SkipReport("recipe", str(recipe.id), RECIPE_HAS_NO_INGREDIENTS, f"Referenced by meal {meal_id}")
            )

    for report in result.skipped:
        logger.info(
            "Skipped shopping list input",
            extra={"family_id": family_id, "kind": report.kind, "reference": report.reference, "reason": report.reason},
        )
    if result.skipped:
        result.warnings.append(PartialResolutionWarning(result.skipped))

    pantry_index = PantryIndex([p for p in pantry if p.family_id == family_id])
    seen_pantry_ids: set[int] = set()

    for key in sorted(groups):
        pantry_item = pantry_index.match(key)
        if pantry_item is not None and not pantry_item.is_low_stock:
            if pantry_item.id not in seen_pantry_ids:
                seen_pantry_ids.add(pantry_item.id)
                result.skipped_for_pantry.append(pantry_item)
            continue

        priority = PRIORITY_HIGH if pantry_item is not None else PRIORITY_NORMAL
        result.proposed_items.extend(_build_drafts(key, groups[key], priority, result))

    result.proposed_items.sort(key=lambda d: (d.category, d.normalized_name, d.unit))
    logger.info(
        "Shopping list generated",
        extra={
            "family_id": family_id,
            "item_count": len(result.proposed_items),
            "pantry_skips": len(result.skipped_for_pantry),
            "skipped": len(result.skipped),
        },
    )
    return result

from dataclasses import dataclass
from datetime import date
from typing import Any

from mealcart import config


@dataclass
class PlannedMeal:
    id: int
    family_id: int
    scheduled_date: date
    recipe_id: int | None = None    # None for ad-hoc entries ("leftovers", "eating out")
    servings: int | None = None
    meal_type: str | None = None    # "breakfast", "lunch", "dinner", "snack"
    status: str = "planned"         # "planned" | "prepared" | "completed"
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlannedMeal":
        """Create PlannedMeal from a stored record or a camelCase API payload."""
        family_id = data.get("family_id", data.get("familyId"))
        scheduled = data.get("scheduled_date", data.get("scheduledDate"))
        missing = [f for f, v in (("id", data.get("id")), ("family_id", family_id), ("scheduled_date", scheduled))
                   if v is None]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        status = data.get("status") or "planned"
        if status not in config.MEAL_STATUSES:
            raise ValueError(f"Invalid meal status: {status}")

        meal_type = data.get("meal_type", data.get("mealType"))
        if meal_type is not None and meal_type not in config.MEAL_TYPES:
            raise ValueError(f"Invalid meal type: {meal_type}")

        recipe_id = data.get("recipe_id", data.get("recipeId"))
        servings = data.get("servings")

        return cls(
            id=int(data["id"]),
            family_id=int(family_id),
            scheduled_date=scheduled if isinstance(scheduled, date) else date.fromisoformat(scheduled),
            recipe_id=int(recipe_id) if recipe_id is not None else None,
            servings=int(servings) if servings is not None else None,
            meal_type=meal_type,
            status=status,
            notes=data.get("notes"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "family_id": self.family_id,
            "scheduled_date": self.scheduled_date.isoformat(),
            "recipe_id": self.recipe_id,
            "servings": self.servings,
            "meal_type": self.meal_type,
            "status": self.status,
            "notes": self.notes,
        }

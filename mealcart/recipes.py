from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass
class Recipe:
    id: int
    family_id: int
    name: str
    # Each entry is either a free-text line ("2 cups flour") or a classified
    # line {"text": "2 cups flour", "category": "Grains"}.
    ingredients: list[Any] = field(default_factory=list)
    servings: int | None = None
    tags: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)

    def ingredient_lines(self) -> Iterator[tuple[str, str | None]]:
        """Yield (text, category) for every non-blank ingredient line."""
        for entry in self.ingredients:
            if isinstance(entry, dict):
                text = str(entry.get("text") or entry.get("item") or "").strip()
                category = entry.get("category") or None
            else:
                text = str(entry or "").strip()
                category = None
            if text:
                yield text, category

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Recipe":
        """Create Recipe from a stored record or a camelCase API payload."""
        family_id = data.get("family_id", data.get("familyId"))
        missing = [f for f, v in (("id", data.get("id")), ("family_id", family_id), ("name", data.get("name")))
                   if v is None]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        ingredients = data.get("ingredients") or []
        if not isinstance(ingredients, list):
            raise ValueError("ingredients must be a list")

        servings = data.get("servings")
        if servings is not None:
            servings = int(servings)

        return cls(
            id=int(data["id"]),
            family_id=int(family_id),
            name=data["name"],
            ingredients=list(ingredients),
            servings=servings,
            tags=data.get("tags") or [],
            instructions=data.get("instructions") or [],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "family_id": self.family_id,
            "name": self.name,
            "ingredients": self.ingredients,
            "servings": self.servings,
            "tags": self.tags,
            "instructions": self.instructions,
        }

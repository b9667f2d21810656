import logging
from dataclasses import dataclass
from typing import Any

from rapidfuzz import fuzz, process
from rapidfuzz.distance import Levenshtein

from mealcart import config
from mealcart.ingredient_normalizer import canonicalise_category, normalize_name

logger = logging.getLogger(__name__)

# Letters a pantry name may differ by, within one word, and still count as the same ingredient
MAX_WORD_EDITS = 1


@dataclass
class PantryItem:
    id: int
    family_id: int
    name: str
    quantity: str = ""      # free text, e.g. "2" or "half a bag"
    unit: str = ""
    category: str = config.DEFAULT_CATEGORY
    is_low_stock: bool = False

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PantryItem":
        """Create PantryItem from a stored record or a camelCase API payload."""
        family_id = data.get("family_id", data.get("familyId"))
        missing = [f for f, v in (("id", data.get("id")), ("family_id", family_id), ("name", data.get("name")))
                   if v is None]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        return cls(
            id=int(data["id"]),
            family_id=int(family_id),
            name=str(data["name"]).strip(),
            quantity=str(data.get("quantity") or ""),
            unit=str(data.get("unit") or ""),
            category=canonicalise_category(data.get("category")),
            is_low_stock=bool(data.get("is_low_stock", data.get("isLowStock", False))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "family_id": self.family_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "category": self.category,
            "is_low_stock": self.is_low_stock,
        }


def _is_spelling_variant(name: str, candidate: str) -> bool:
    """True when the names differ only by a one-letter typo in a single word.

    'chilli' ~ 'chili' passes; 'salted butter' vs 'unsalted butter' does not,
    since an added qualifier changes what has to be bought.
    """
    words, candidate_words = name.split(), candidate.split()
    if len(words) != len(candidate_words):
        return False
    differing = [(a, b) for a, b in zip(words, candidate_words) if a != b]
    return len(differing) == 1 and Levenshtein.distance(*differing[0]) <= MAX_WORD_EDITS


class PantryIndex:
    """Lookup of a family's pantry stock by normalized ingredient name."""

    def __init__(self, items: list[PantryItem], threshold: int | None = None):
        self.threshold = config.PANTRY_MATCH_THRESHOLD if threshold is None else threshold
        # Sorted by id so that ties always resolve to the same pantry entry
        self._items = sorted(items, key=lambda i: i.id)
        self._keys = [item.normalized_name for item in self._items]

    def match(self, normalized_name: str) -> PantryItem | None:
        """Return the pantry entry for *normalized_name*, or None.

        Exact key matches win.  When several entries share the key, one that
        is not low-stock is preferred: the family has it on hand.  Otherwise
        the closest key scoring at or above the threshold is used, provided
        it is only a spelling variant of the name.
        """
        if not normalized_name or not self._items:
            return None

        exact = [item for item, key in zip(self._items, self._keys) if key == normalized_name]
        if exact:
            in_stock = [item for item in exact if not item.is_low_stock]
            return in_stock[0] if in_stock else exact[0]

        candidates = process.extract(
            normalized_name,
            self._keys,
            scorer=fuzz.ratio,
            score_cutoff=self.threshold,
            limit=None,
        )
        for key, score, index in candidates:
            if not _is_spelling_variant(normalized_name, key):
                continue
            logger.debug(
                "Fuzzy pantry match",
                extra={"ingredient": normalized_name, "pantry_item": self._items[index].name, "score": score},
            )
            return self._items[index]
        return None

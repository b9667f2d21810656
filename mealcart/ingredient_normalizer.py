"""
Normalisation helpers shared by the ingredient parser, the shopping-list
consolidation engine and the pantry store.

Standardizes units, produces grouping keys for ingredient names, and maps
free-text categories onto the canonical shopping categories.
"""

import logging
import re
import unicodedata

from mealcart import config

logger = logging.getLogger(__name__)

# Spelling / abbreviation → canonical unit.  Lookups try the exact spelling
# first so that the recipe shorthands "t" (tsp) and "T" (tbsp) stay distinct.
UNIT_MAPPING = {
    # Volume
    'cup': 'cup', 'cups': 'cup', 'c': 'cup', 'c.': 'cup',
    'tablespoon': 'tbsp', 'tablespoons': 'tbsp', 'tbsp': 'tbsp', 'tbs': 'tbsp', 'tbl': 'tbsp',
    'T': 'tbsp', 'Tbsp': 'tbsp',
    'teaspoon': 'tsp', 'teaspoons': 'tsp', 'tsp': 'tsp', 't': 'tsp',
    'fluid ounce': 'fl oz', 'fluid ounces': 'fl oz', 'fl oz': 'fl oz', 'fl. oz.': 'fl oz', 'fl. oz': 'fl oz',
    'pint': 'pint', 'pints': 'pint', 'pt': 'pint',
    'quart': 'quart', 'quarts': 'quart', 'qt': 'quart',
    'gallon': 'gallon', 'gallons': 'gallon', 'gal': 'gallon',
    'milliliter': 'ml', 'milliliters': 'ml', 'millilitre': 'ml', 'millilitres': 'ml', 'ml': 'ml', 'mL': 'ml',
    'liter': 'l', 'liters': 'l', 'litre': 'l', 'litres': 'l', 'l': 'l', 'L': 'l',

    # Weight
    'gram': 'g', 'grams': 'g', 'g': 'g', 'gr': 'g',
    'kilogram': 'kg', 'kilograms': 'kg', 'kg': 'kg', 'kilo': 'kg', 'kilos': 'kg',
    'ounce': 'oz', 'ounces': 'oz', 'oz': 'oz', 'oz.': 'oz',
    'pound': 'lb', 'pounds': 'lb', 'lb': 'lb', 'lbs': 'lb',

    # Count
    'slice': 'slice', 'slices': 'slice',
    'clove': 'clove', 'cloves': 'clove',
    'bunch': 'bunch', 'bunches': 'bunch',
    'can': 'can', 'cans': 'can',
    'jar': 'jar', 'jars': 'jar',
    'bottle': 'bottle', 'bottles': 'bottle',
    'package': 'package', 'packages': 'package', 'pkg': 'package',
    'pinch': 'pinch', 'pinches': 'pinch',
    'dash': 'dash', 'dashes': 'dash',
    'head': 'head', 'heads': 'head',
    'stalk': 'stalk', 'stalks': 'stalk',
    'sprig': 'sprig', 'sprigs': 'sprig',
    'stick': 'stick', 'sticks': 'stick',
    'piece': 'piece', 'pieces': 'piece',
}

# Trailing phrases that describe how much to use rather than what to buy.
# They are dropped from grouping keys so "salt to taste" groups with "1 tsp salt".
_USAGE_PHRASES = (
    "to taste", "as needed", "as required", "for serving", "for garnish",
    "for frying", "if desired", "optional",
)

# Words whose trailing "s" is not a plural marker
_UNCOUNTABLE = frozenset({
    "molasses", "couscous", "hummus", "asparagus", "grits", "swiss", "citrus",
    "bus", "lemongrass", "watercress",
})

_QUANTITY_PREFIX_RE = re.compile(
    r"^\s*(?:\d+(?:[.,]\d+)?|\d*[¼½¾⅓⅔⅛⅜⅝⅞]|\d+/\d+|[\s/\-–]|to\s+(?=\d))+"
)

_CANONICAL_CATEGORIES = (
    "Produce", "Meat", "Seafood", "Dairy", "Bakery", "Grains", "Pantry",
    "Spices", "Frozen", "Beverages", "Canned Goods", "Condiments", "Snacks",
    "Household", config.DEFAULT_CATEGORY,
)
_CATEGORY_LOOKUP: dict[str, str] = {c.lower(): c for c in _CANONICAL_CATEGORIES}

# Aliases → canonical category (covers variant names coming from the client)
_CATEGORY_ALIASES: dict[str, str] = {
    "vegetables": "Produce",
    "vegetable": "Produce",
    "fruits": "Produce",
    "fruit": "Produce",
    "herbs": "Produce",
    "fish": "Seafood",
    "fish and seafood": "Seafood",
    "meat and poultry": "Meat",
    "poultry": "Meat",
    "cheese": "Dairy",
    "eggs": "Dairy",
    "dairy and eggs": "Dairy",
    "bread": "Bakery",
    "baked goods": "Bakery",
    "pasta and rice": "Grains",
    "spice": "Spices",
    "seasoning": "Spices",
    "seasonings": "Spices",
    "spices and seasonings": "Spices",
    "canned": "Canned Goods",
    "canned goods": "Canned Goods",
    "sauces": "Condiments",
    "condiment": "Condiments",
    "drinks": "Beverages",
    "other": config.DEFAULT_CATEGORY,
    "misc": config.DEFAULT_CATEGORY,
}


def standardize_unit(unit: str | None) -> str:
    """Return the canonical spelling of *unit*.

    Unknown units are returned lowercased and stripped so that two
    identical spellings still compare equal.  Empty input maps to ''.
    """
    if not unit:
        return ''

    stripped = unit.strip()
    # Case-sensitive first pass (handles t vs T, Tbsp, etc.)
    if stripped in UNIT_MAPPING:
        return UNIT_MAPPING[stripped]

    unit_lower = stripped.lower()
    if unit_lower in UNIT_MAPPING:
        return UNIT_MAPPING[unit_lower]

    without_dot = unit_lower.rstrip('.')
    if without_dot in UNIT_MAPPING:
        return UNIT_MAPPING[without_dot]

    return unit_lower


def is_known_unit(token: str) -> bool:
    """True if *token* is a recognised unit spelling (trailing '.' allowed)."""
    if not token:
        return False
    stripped = token.strip()
    return (
        stripped in UNIT_MAPPING
        or stripped.lower() in UNIT_MAPPING
        or stripped.lower().rstrip('.') in UNIT_MAPPING
    )


def strip_diacritics(text: str) -> str:
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join(c for c in nfkd if not unicodedata.combining(c))


def singularize(word: str) -> str:
    """Singularize simple English plurals (berries → berry, tomatoes → tomato)."""
    if len(word) <= 3 or word in _UNCOUNTABLE:
        return word
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("oes"):
        return word[:-2]
    if word.endswith(("ches", "shes", "sses", "xes", "zes")):
        return word[:-2]
    if word.endswith(("ss", "us", "is")):
        return word
    if word.endswith("s"):
        return word[:-1]
    return word


def _strip_leading_unit(text: str) -> str:
    """Drop a unit token (and a following 'of') from the start of *text*."""
    # Two-word units first ("fl oz", "fluid ounces")
    parts = text.split(None, 2)
    if len(parts) >= 3 and is_known_unit(f"{parts[0]} {parts[1]}"):
        text = parts[2]
    elif len(parts) >= 2 and is_known_unit(parts[0]):
        text = text.split(None, 1)[1]
    if text.startswith("of "):
        text = text[3:]
    return text


def normalize_name(text: str) -> str:
    """Return the grouping key for an ingredient name or full ingredient line.

    "2 Cups Flour" → "flour", "Tomatoes, diced" → "tomato",
    "1 lb chicken breasts (boneless)" → "chicken breast".
    """
    if not text:
        return ""

    s = re.sub(r"\([^)]*\)", " ", text)
    s = s.split(",", 1)[0].strip().lower()

    without_qty = _QUANTITY_PREFIX_RE.sub("", s, count=1).strip()
    if without_qty != s and without_qty:
        s = _strip_leading_unit(without_qty)
    elif without_qty:
        s = without_qty

    s = strip_diacritics(s)
    s = re.sub(r"[^\w\s'-]", " ", s)
    s = re.sub(r"\s+", " ", s).strip(" -'")

    for phrase in _USAGE_PHRASES:
        if s.endswith(" " + phrase):
            s = s[: -len(phrase)].strip()
            break

    words = s.split()
    if not words:
        return ""
    words[-1] = singularize(words[-1])
    return " ".join(words)


def canonicalise_category(raw: str | None) -> str:
    """Return the canonical category for *raw*.

    Empty input falls back to the default category.  Unrecognised values
    are kept (stripped) since families are free to invent their own aisles.
    """
    if not raw or not raw.strip():
        return config.DEFAULT_CATEGORY
    normalised = raw.strip().lower()
    if normalised in _CATEGORY_LOOKUP:
        return _CATEGORY_LOOKUP[normalised]
    if normalised in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[normalised]
    logger.debug("Keeping custom ingredient category %r", raw)
    return raw.strip()

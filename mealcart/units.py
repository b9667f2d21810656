"""Static unit conversion table.

All volume units are expressed in ml; all weight units in grams.  Keys are
the canonical spellings produced by ``standardize_unit``.  Conversion only
happens inside one measurement family: volume ↔ weight depends on the
ingredient's density and is never attempted.
"""

from mealcart import config

VOLUME_TO_ML: dict[str, float] = {
    "tsp": 4.92892,
    "tbsp": 14.7868,
    "fl oz": 29.5735,
    "cup": 236.588,
    "pint": 473.176,
    "quart": 946.353,
    "gallon": 3785.41,
    "ml": 1,
    "l": 1000,
}

WEIGHT_TO_G: dict[str, float] = {
    "g": 1,
    "kg": 1000,
    "oz": 28.3495,
    "lb": 453.592,
}

_FAMILIES: dict[str, dict[str, float]] = {
    "volume": VOLUME_TO_ML,
    "weight": WEIGHT_TO_G,
}

# Units whose display form takes a plural when the quantity isn't 1.
# Abbreviations (tsp, g, lb, ...) never do.
_PLURALS: dict[str, str] = {
    "cup": "cups", "pint": "pints", "quart": "quarts", "gallon": "gallons",
    "slice": "slices", "clove": "cloves", "bunch": "bunches", "can": "cans",
    "jar": "jars", "bottle": "bottles", "package": "packages",
    "pinch": "pinches", "dash": "dashes", "head": "heads", "stalk": "stalks",
    "sprig": "sprigs", "stick": "sticks", "piece": "pieces",
}


class UnitConversionAmbiguity(Exception):
    """Quantities of one ingredient use units that cannot be converted.

    Not a failure: the consolidation engine records it and keeps the
    quantities as separate shopping-list lines.
    """

    def __init__(self, units, normalized_name: str = ""):
        self.units = tuple(units)
        self.normalized_name = normalized_name
        message = f"Cannot convert between units {', '.join(repr(u) for u in self.units)}"
        if normalized_name:
            message += f" for '{normalized_name}'"
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"normalizedName": self.normalized_name, "units": list(self.units)}


def unit_family(unit: str) -> str | None:
    """Return 'volume' or 'weight' for convertible units, None otherwise."""
    for family, table in _FAMILIES.items():
        if unit in table:
            return family
    return None


def to_base(quantity: float, unit: str) -> float:
    """Express *quantity* in its family's base unit (ml or g).

    Non-convertible units are their own base.
    """
    family = unit_family(unit)
    if family is None:
        return quantity
    return quantity * _FAMILIES[family][unit]


def convert(quantity: float, from_unit: str, to_unit: str) -> float:
    """Convert *quantity* between two units of the same family.

    Raises:
        UnitConversionAmbiguity: If the units are not mutually convertible
    """
    if from_unit == to_unit:
        return quantity
    family = unit_family(from_unit)
    if family is None or family != unit_family(to_unit):
        raise UnitConversionAmbiguity([from_unit, to_unit])
    table = _FAMILIES[family]
    return quantity * table[from_unit] / table[to_unit]


def largest_unit(units) -> str:
    """Return the unit with the biggest base equivalent among *units*.

    All units must belong to the same convertible family.
    """
    units = sorted(set(units))
    family = unit_family(units[0])
    if family is None:
        raise UnitConversionAmbiguity(units)
    return max(units, key=lambda u: _FAMILIES[family][u])


def format_quantity(quantity: float | None, precision: int = config.QUANTITY_PRECISION) -> str:
    """Render a quantity for a text field: 2.0 → '2', 1.3333 → '1.33', None → 'as needed'.

    A positive quantity never renders as '0'; it is rounded up to the
    smallest step the precision can show (0.002 → '0.01').
    """
    if quantity is None:
        return config.AS_NEEDED_LABEL
    rounded = round(quantity, precision)
    if quantity > 0 and rounded <= 0:
        rounded = 10 ** -precision
    text = f"{rounded:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def display_unit(unit: str, quantity: float | None) -> str:
    """Pluralise word units for display ('cup' → 'cups' unless quantity is 1)."""
    if quantity is None or abs(quantity - 1) < 1e-9:
        return unit
    return _PLURALS.get(unit, unit)

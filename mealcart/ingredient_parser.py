"""Ingredient line parsing: quantity, unit and name extraction.

``IngredientParser.parse`` turns a free-text recipe line such as
"1 ½ cups all-purpose flour, sifted" into a ``ParsedIngredient``.  Lines that
do not start with a usable quantity ("salt to taste") come back as an
``UnparsedIngredient`` carrying the original text.  Parsing never raises.
"""

import re
from dataclasses import dataclass, replace

from mealcart.ingredient_normalizer import is_known_unit, standardize_unit

_UNICODE_FRACTIONS = {
    '¼': 0.25, '½': 0.5, '¾': 0.75,
    '⅓': 1 / 3, '⅔': 2 / 3,
    '⅛': 0.125, '⅜': 0.375, '⅝': 0.625, '⅞': 0.875,
}
_FRACTION_CHARS = ''.join(_UNICODE_FRACTIONS)

# Mixed numbers must come before simple fractions, which come before
# plain decimals, or "1 1/2" would stop matching at "1".
_NUMBER = (
    rf'\d+\s+[{_FRACTION_CHARS}]'
    rf'|\d*[{_FRACTION_CHARS}]'
    r'|\d+\s+\d+/\d+'
    r'|\d+/\d+'
    r'|\d+(?:[.,]\d+)?'
    r'|\.\d+'
)

_LEADING_QUANTITY_RE = re.compile(
    rf'^\s*(?P<qty>{_NUMBER})'
    rf'(?:\s*(?:-|–|to)\s*(?P<upper>{_NUMBER}))?'
    r'\s*(?P<rest>.*)$',
    re.DOTALL,
)

_TWO_WORD_UNIT_RE = re.compile(r'^(?P<unit>fl\.?\s*oz\.?|fluid\s+ounces?)(?=\s|$)\s*', re.IGNORECASE)
_ONE_WORD_UNIT_RE = re.compile(r'^(?P<unit>[A-Za-z]+\.?)(?=\s|$)\s*')
_LEADING_ASIDE_RE = re.compile(r'^\((?P<aside>[^()]*)\)\s*')


@dataclass(frozen=True)
class ParsedIngredient:
    """An ingredient line decomposed into quantity, unit and name."""
    quantity: float
    unit: str          # canonical unit, '' for plain counts ("2 eggs")
    name: str
    raw: str
    notes: str | None = None  # Preparation details like "finely chopped"

    def scaled(self, factor: float) -> "ParsedIngredient":
        return replace(self, quantity=self.quantity * factor)


@dataclass(frozen=True)
class UnparsedIngredient:
    """An ingredient line with no usable leading quantity, kept verbatim."""
    text: str


def parse_quantity(quantity_str: str) -> float | None:
    """Parse quantity string to float.

    Handles: "1", "1.5", "1,5", "1/4", "1 1/2", "¼", "1½", "1 ½"
    """
    quantity_str = quantity_str.strip()
    if not quantity_str:
        return None

    # Integer + unicode fraction: "1½" / "1 ½", or just "½"
    if quantity_str[-1] in _UNICODE_FRACTIONS:
        whole_part = quantity_str[:-1].strip()
        whole = float(whole_part) if whole_part else 0.0
        return whole + _UNICODE_FRACTIONS[quantity_str[-1]]

    # Mixed number: "1 1/2"
    if ' ' in quantity_str and '/' in quantity_str:
        whole, frac = quantity_str.split(None, 1)
        frac_value = parse_quantity(frac)
        if frac_value is None:
            return None
        return float(whole) + frac_value

    # Simple fraction: "1/2"
    if '/' in quantity_str:
        try:
            num, denom = quantity_str.split('/')
            return float(num) / float(denom)
        except (ValueError, ZeroDivisionError):
            return None

    try:
        return float(quantity_str.replace(',', '.'))
    except ValueError:
        return None


class IngredientParser:
    """Parse ingredient strings into structured format."""

    def parse(self, ingredient_str: str) -> ParsedIngredient | UnparsedIngredient:
        """Parse an ingredient line.

        Examples:
            "2 cups flour"                    → 2.0 cup flour
            "1 ½ lb chicken breast, cubed"    → 1.5 lb chicken breast, notes "cubed"
            "2-3 cloves garlic"               → 3.0 clove garlic
            "3 eggs"                          → 3.0 '' eggs
            "salt to taste"                   → UnparsedIngredient("salt to taste")
        """
        text = (ingredient_str or '').strip()
        match = _LEADING_QUANTITY_RE.match(text)
        if not match:
            return UnparsedIngredient(text=text)

        # Ranges ("2-3 cloves") are bought at their upper bound
        quantity = parse_quantity(match.group('upper') or match.group('qty'))
        if quantity is None or quantity <= 0:
            return UnparsedIngredient(text=text)

        unit, remainder = self._split_unit(match.group('rest'))
        name, notes = self._extract_name_and_notes(remainder)

        if not name:
            if not unit:
                return UnparsedIngredient(text=text)
            # "2 cloves" on its own: the word is the thing being bought
            name, unit = match.group('rest').strip(), ''

        return ParsedIngredient(
            quantity=quantity,
            unit=unit,
            name=name,
            raw=text,
            notes=notes,
        )

    def _split_unit(self, rest: str) -> tuple[str, str]:
        """Return (canonical unit, remaining text); unit is '' when absent.

        A size aside before the unit ("(14 oz) can tomatoes") is moved
        behind the name so it ends up in the notes.
        """
        aside = _LEADING_ASIDE_RE.match(rest)
        if aside:
            unit, remainder = self._split_unit(rest[aside.end():])
            if unit:
                return unit, f"{remainder} ({aside.group('aside')})"
            return '', rest

        two_word = _TWO_WORD_UNIT_RE.match(rest)
        if two_word:
            return 'fl oz', rest[two_word.end():]

        one_word = _ONE_WORD_UNIT_RE.match(rest)
        if one_word and is_known_unit(one_word.group('unit')):
            return standardize_unit(one_word.group('unit')), rest[one_word.end():]

        return '', rest

    def _extract_name_and_notes(self, text: str) -> tuple[str, str | None]:
        """Separate the ingredient name from preparation notes.

        "flour (sifted)"            → ("flour", "sifted")
        "tomatoes, diced"           → ("tomatoes", "diced")
        "of olive oil"              → ("olive oil", None)
        """
        notes: list[str] = []

        for aside in re.findall(r'\(([^)]*)\)', text):
            if aside.strip():
                notes.append(aside.strip())
        text = re.sub(r'\s*\([^)]*\)', '', text)

        if ',' in text:
            text, after = text.split(',', 1)
            if after.strip():
                notes.append(after.strip())

        text = re.sub(r'^\s*of\s+', '', text, flags=re.IGNORECASE)
        name = re.sub(r'\s+', ' ', text).strip(' .;:-')

        return name, ('; '.join(notes) if notes else None)

import pytest

from mealcart.ingredient_normalizer import (
    canonicalise_category,
    is_known_unit,
    normalize_name,
    singularize,
    standardize_unit,
)


class TestStandardizeUnit:
    @pytest.mark.parametrize("unit,expected", [
        ("cups", "cup"),
        ("Tablespoons", "tbsp"),
        ("tbsp.", "tbsp"),
        ("T", "tbsp"),
        ("t", "tsp"),
        ("LBS", "lb"),
        ("grams", "g"),
        ("Litre", "l"),
        ("fluid ounces", "fl oz"),
        ("cloves", "clove"),
    ])
    def test_known_spellings(self, unit, expected):
        assert standardize_unit(unit) == expected

    def test_unknown_unit_lowercased(self):
        assert standardize_unit(" Handful ") == "handful"

    def test_empty(self):
        assert standardize_unit("") == ""
        assert standardize_unit(None) == ""

    def test_is_known_unit(self):
        assert is_known_unit("Tbsp.")
        assert is_known_unit("oz")
        assert not is_known_unit("flour")
        assert not is_known_unit("")


class TestSingularize:
    @pytest.mark.parametrize("word,expected", [
        ("berries", "berry"),
        ("tomatoes", "tomato"),
        ("peaches", "peach"),
        ("onions", "onion"),
        ("eggs", "egg"),
        ("molasses", "molasses"),
        ("hummus", "hummus"),
        ("peas", "pea"),
        ("gas", "gas"),
    ])
    def test_singularize(self, word, expected):
        assert singularize(word) == expected


class TestNormalizeName:
    @pytest.mark.parametrize("text,expected", [
        ("2 Cups Flour", "flour"),
        ("Tomatoes, diced", "tomato"),
        ("1 lb chicken breasts (boneless)", "chicken breast"),
        ("salt to taste", "salt"),
        ("olive oil, for frying", "olive oil"),
        ("1 1/2 cups of rice", "rice"),
        ("8 fl oz heavy cream", "heavy cream"),
        ("½ tsp Jalapeño flakes", "jalapeno flake"),
        ("2-3 cloves garlic", "garlic"),
        ("Onions!", "onion"),
        ("fresh parsley as needed", "fresh parsley"),
    ])
    def test_grouping_keys(self, text, expected):
        assert normalize_name(text) == expected

    def test_unit_word_kept_without_quantity(self):
        # "can" is only a unit when it follows a quantity
        assert normalize_name("cans of beans") == "cans of bean"

    def test_empty(self):
        assert normalize_name("") == ""
        assert normalize_name("  ,  ") == ""

    def test_same_key_for_singular_and_plural(self):
        assert normalize_name("3 eggs") == normalize_name("1 egg")


class TestCanonicaliseCategory:
    @pytest.mark.parametrize("raw,expected", [
        ("produce", "Produce"),
        ("DAIRY", "Dairy"),
        ("vegetables", "Produce"),
        ("poultry", "Meat"),
        ("other", "Uncategorized"),
        ("", "Uncategorized"),
        (None, "Uncategorized"),
        ("   ", "Uncategorized"),
    ])
    def test_canonical(self, raw, expected):
        assert canonicalise_category(raw) == expected

    def test_custom_category_kept(self):
        assert canonicalise_category(" Picnic Stuff ") == "Picnic Stuff"

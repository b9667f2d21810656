"""Pytest configuration and fixtures."""

from datetime import date

import pytest

from mealcart.meals import PlannedMeal
from mealcart.pantry import PantryItem
from mealcart.recipes import Recipe
from mealcart.store import StoreFile


def create_test_recipe(
    recipe_id: int,
    name: str = "Test Recipe",
    family_id: int = 1,
    servings: int | None = 4,
    ingredients: list | None = None,
    tags: list | None = None,
) -> Recipe:
    """Helper to create a test Recipe."""
    return Recipe(
        id=recipe_id,
        family_id=family_id,
        name=name,
        ingredients=ingredients or [],
        servings=servings,
        tags=tags or [],
        instructions=["Cook it."],
    )


def create_test_meal(
    meal_id: int,
    recipe_id: int | None,
    family_id: int = 1,
    servings: int | None = 4,
    scheduled_date: date = date(2024, 3, 4),
    meal_type: str | None = "dinner",
    status: str = "planned",
) -> PlannedMeal:
    """Helper to create a test PlannedMeal."""
    return PlannedMeal(
        id=meal_id,
        family_id=family_id,
        scheduled_date=scheduled_date,
        recipe_id=recipe_id,
        servings=servings,
        meal_type=meal_type,
        status=status,
    )


def create_test_pantry_item(
    item_id: int,
    name: str,
    family_id: int = 1,
    quantity: str = "1",
    unit: str = "",
    category: str = "Pantry",
    is_low_stock: bool = False,
) -> PantryItem:
    """Helper to create a test PantryItem."""
    return PantryItem(
        id=item_id,
        family_id=family_id,
        name=name,
        quantity=quantity,
        unit=unit,
        category=category,
        is_low_stock=is_low_stock,
    )


@pytest.fixture
def store_file(tmp_path):
    """A StoreFile seeded with two families, recipes, meals and pantry stock."""
    store = StoreFile(tmp_path / "mealcart.json")
    store.save({
        "families": [
            {"id": 1, "name": "Smith"},
            {"id": 2, "name": "Jones"},
        ],
        "recipes": [
            {
                "id": 10, "family_id": 1, "name": "Pancakes", "servings": 4,
                "ingredients": ["1 cup flour", "2 eggs", "salt to taste"],
                "tags": [], "instructions": [],
            },
            {
                "id": 11, "family_id": 1, "name": "Chicken Bake", "servings": 2,
                "ingredients": [
                    {"text": "1 lb chicken breast", "category": "meat"},
                    {"text": "2 tbsp olive oil", "category": "Pantry"},
                ],
                "tags": [], "instructions": [],
            },
            {
                "id": 20, "family_id": 2, "name": "Jones Soup", "servings": 4,
                "ingredients": ["1 l stock"], "tags": [], "instructions": [],
            },
        ],
        "meals": [
            {"id": 100, "family_id": 1, "recipe_id": 10, "scheduled_date": "2024-03-04",
             "servings": 4, "meal_type": "breakfast", "status": "planned"},
            {"id": 101, "family_id": 1, "recipe_id": 10, "scheduled_date": "2024-03-05",
             "servings": 4, "meal_type": "breakfast", "status": "planned"},
            {"id": 102, "family_id": 1, "recipe_id": 11, "scheduled_date": "2024-03-05",
             "servings": 4, "meal_type": "dinner", "status": "planned"},
            {"id": 103, "family_id": 1, "recipe_id": None, "scheduled_date": "2024-03-06",
             "servings": None, "meal_type": "dinner", "status": "planned"},
            {"id": 200, "family_id": 2, "recipe_id": 20, "scheduled_date": "2024-03-04",
             "servings": 4, "meal_type": "dinner", "status": "planned"},
        ],
        "pantry": [
            {"id": 1, "family_id": 1, "name": "Olive Oil", "quantity": "1", "unit": "bottle",
             "category": "Pantry", "is_low_stock": False},
            {"id": 2, "family_id": 1, "name": "Eggs", "quantity": "2", "unit": "",
             "category": "Dairy", "is_low_stock": True},
        ],
        "shopping_lists": [
            {"id": 1, "family_id": 1, "name": "Weekly shop", "description": None, "is_active": True,
             "created_at": "2024-03-01T09:00:00+00:00"},
            {"id": 2, "family_id": 2, "name": "Jones shop", "description": None, "is_active": True,
             "created_at": "2024-03-01T09:00:00+00:00"},
        ],
        "shopping_list_items": [],
    })
    return store

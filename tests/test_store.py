import json
from datetime import date

import pytest

from mealcart.shopping_list import generate_shopping_list
from mealcart.store import (
    FamilyStore,
    MealStore,
    PantryStore,
    RecipeStore,
    ShoppingListStore,
    StoreError,
    StoreFile,
)


def _generate(store_file, meal_ids, family_id=1):
    meals = MealStore(store_file).get_by_ids(family_id, meal_ids)
    recipe_ids = {m.recipe_id for m in meals if m.recipe_id is not None}
    return generate_shopping_list(
        family_id,
        meal_ids,
        meals=meals,
        recipes=RecipeStore(store_file).get_by_ids(family_id, recipe_ids),
        pantry=PantryStore(store_file).get_all(family_id),
    )


class TestStoreFile:
    def test_missing_file_is_empty_store(self, tmp_path):
        data = StoreFile(tmp_path / "missing.json").load()

        assert data["families"] == []
        assert data["shopping_list_items"] == []

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(StoreError, match="Invalid JSON"):
            StoreFile(path).load()

    def test_non_object_raises(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]")

        with pytest.raises(StoreError):
            StoreFile(path).load()

    def test_save_leaves_no_temp_files(self, tmp_path):
        store = StoreFile(tmp_path / "nested" / "store.json")

        store.save({"families": [{"id": 1, "name": "Smith"}]})

        assert [p.name for p in (tmp_path / "nested").iterdir()] == ["store.json"]
        assert json.loads((tmp_path / "nested" / "store.json").read_text())["families"][0]["name"] == "Smith"

    def test_transaction_not_saved_on_error(self, store_file):
        with pytest.raises(RuntimeError):
            with store_file.transaction() as data:
                data["families"].append({"id": 3, "name": "Lost"})
                raise RuntimeError("boom")

        assert FamilyStore(store_file).ids() == {1, 2}


class TestFamilyRecipeMealStores:
    def test_family_add(self, store_file):
        family = FamilyStore(store_file).add("Garcia")

        assert family["id"] == 3
        assert FamilyStore(store_file).exists(3)

    def test_recipes_by_ids(self, store_file):
        recipes = RecipeStore(store_file).get_by_ids(1, [11, 10, 404])

        assert [r.id for r in recipes] == [10, 11]
        assert recipes[1].servings == 2

    def test_foreign_records_are_returned(self, store_file):
        assert [m.family_id for m in MealStore(store_file).get_by_ids(1, [200])] == [2]
        assert [r.family_id for r in RecipeStore(store_file).get_by_ids(1, [20])] == [2]

    def test_meal_add_validates_status(self, store_file):
        with pytest.raises(ValueError, match="status"):
            MealStore(store_file).add({"family_id": 1, "scheduled_date": "2024-03-07", "status": "eaten"})

    def test_meal_add(self, store_file):
        meal = MealStore(store_file).add({"familyId": 1, "scheduledDate": "2024-03-07", "recipeId": 10})

        assert meal.id == 201
        assert meal.recipe_id == 10
        assert meal.scheduled_date.isoformat() == "2024-03-07"

    def test_family_add_requires_name(self, store_file):
        with pytest.raises(ValueError, match="name"):
            FamilyStore(store_file).add("  ")

    def test_family_get_all(self, store_file):
        assert [f["name"] for f in FamilyStore(store_file).get_all()] == ["Smith", "Jones"]

    def test_recipes_of_family_sorted_by_name(self, store_file):
        assert [r.name for r in RecipeStore(store_file).get_all(1)] == ["Chicken Bake", "Pancakes"]

    def test_recipe_update(self, store_file):
        recipes = RecipeStore(store_file)

        updated = recipes.update(10, {"servings": 2, "ingredients": ["2 cups flour"]})

        assert updated.servings == 2
        assert updated.family_id == 1
        assert recipes.get(10).ingredients == ["2 cups flour"]

    def test_recipe_update_cannot_move_family(self, store_file):
        with pytest.raises(ValueError, match="Unknown recipe fields"):
            RecipeStore(store_file).update(10, {"family_id": 2})

    def test_recipe_update_missing(self, store_file):
        assert RecipeStore(store_file).update(99, {"name": "Soup"}) is None

    def test_recipe_delete_detaches_meals(self, store_file):
        assert RecipeStore(store_file).delete(10) is True

        assert RecipeStore(store_file).get(10) is None
        assert [m.recipe_id for m in MealStore(store_file).get_by_ids(1, [100, 101])] == [None, None]
        assert RecipeStore(store_file).delete(10) is False

    def test_meals_of_family_by_date(self, store_file):
        meals = MealStore(store_file).get_all(1)

        assert [m.id for m in meals] == [100, 101, 102, 103]

    def test_meals_within_date_range(self, store_file):
        meals = MealStore(store_file).get_all(1, start=date(2024, 3, 5), end=date(2024, 3, 5))

        assert [m.id for m in meals] == [101, 102]


class TestPantryStore:
    def test_get_all_sorted_by_name(self, store_file):
        names = [p.name for p in PantryStore(store_file).get_all(1)]

        assert names == ["Eggs", "Olive Oil"]

    def test_add_canonicalises_category(self, store_file):
        item = PantryStore(store_file).add(1, {"name": "Rice", "quantity": "1", "unit": "kg",
                                               "category": "pasta and rice"})

        assert item.id == 3
        assert item.category == "Grains"
        assert PantryStore(store_file).get(3).name == "Rice"

    def test_update_low_stock(self, store_file):
        updated = PantryStore(store_file).update(1, {"isLowStock": True})

        assert updated.is_low_stock is True
        assert PantryStore(store_file).get(1).is_low_stock is True

    def test_update_unknown_field(self, store_file):
        with pytest.raises(ValueError, match="Unknown pantry fields"):
            PantryStore(store_file).update(1, {"colour": "green"})

    def test_update_missing_item(self, store_file):
        assert PantryStore(store_file).update(99, {"quantity": "3"}) is None

    def test_delete(self, store_file):
        pantry = PantryStore(store_file)

        assert pantry.delete(1) is True
        assert pantry.delete(1) is False
        assert [p.id for p in pantry.get_all(1)] == [2]


class TestShoppingListStore:
    def test_create_list(self, store_file):
        created = ShoppingListStore(store_file).create_list(1, "  Party  ")

        assert created.id == 3
        assert created.name == "Party"
        assert [s.id for s in ShoppingListStore(store_file).lists_for_family(1)] == [3, 1]

    def test_create_list_requires_name(self, store_file):
        with pytest.raises(ValueError):
            ShoppingListStore(store_file).create_list(1, "  ")

    def test_add_and_update_item(self, store_file):
        lists = ShoppingListStore(store_file)
        item = lists.add_item(1, {"name": "Paper Towels", "category": "household"})

        assert item.normalized_name == "paper towel"
        assert item.category == "Household"
        assert item.source_type == "manual"

        updated = lists.update_item(item.id, {"name": "Bananas", "isCompleted": True})
        assert updated.normalized_name == "banana"
        assert updated.is_completed is True
        assert lists.get_item(item.id).name == "Bananas"

    def test_update_item_rejects_bad_priority(self, store_file):
        lists = ShoppingListStore(store_file)
        item = lists.add_item(1, {"name": "Milk"})

        with pytest.raises(ValueError, match="priority"):
            lists.update_item(item.id, {"priority": "urgent"})
        assert lists.get_item(item.id).priority == "normal"

    def test_update_missing_item(self, store_file):
        assert ShoppingListStore(store_file).update_item(99, {"name": "x"}) is None

    def test_bulk_update_ignores_unknown_ids(self, store_file):
        lists = ShoppingListStore(store_file)
        first = lists.add_item(1, {"name": "Milk"})
        second = lists.add_item(1, {"name": "Bread"})

        updated = lists.bulk_update_items([
            (first.id, {"is_completed": True}),
            (second.id, {"aisle": "7"}),
            (999, {"is_completed": True}),
        ])

        assert [i.id for i in updated] == [first.id, second.id]
        assert lists.get_item(first.id).is_completed is True
        assert lists.get_item(second.id).aisle == "7"

    def test_delete_item(self, store_file):
        lists = ShoppingListStore(store_file)
        item = lists.add_item(1, {"name": "Milk"})

        assert lists.delete_item(item.id) is True
        assert lists.get_items(1) == []

    def test_item_history_across_family_lists(self, store_file):
        lists = ShoppingListStore(store_file)
        lists.add_item(1, {"name": "Tomatoes"})
        party = lists.create_list(1, "Party")
        lists.add_item(party.id, {"name": "tomato", "quantity": "4"})
        lists.add_item(2, {"name": "Tomatoes"})  # other family's list

        history = lists.item_history(1, "Tomato")

        assert [i.shopping_list_id for i in history] == [party.id, 1]

    def test_items_listed_high_priority_first(self, store_file):
        lists = ShoppingListStore(store_file)
        milk = lists.add_item(1, {"name": "Milk"})
        bread = lists.add_item(1, {"name": "Bread", "priority": "low"})
        eggs = lists.add_item(1, {"name": "Eggs", "priority": "high"})

        assert [i.id for i in lists.get_items(1)] == [eggs.id, milk.id, bread.id]


class TestUpsertDrafts:
    def test_upsert_is_idempotent(self, store_file):
        lists = ShoppingListStore(store_file)
        result = _generate(store_file, [100, 101, 102])

        first = lists.upsert_drafts(1, result.proposed_items)
        second = lists.upsert_drafts(1, _generate(store_file, [100, 101, 102]).proposed_items)

        assert [i.id for i in first] == [i.id for i in second]
        assert len(lists.get_items(1)) == len(result.proposed_items)

    def test_upsert_stores_provenance(self, store_file):
        lists = ShoppingListStore(store_file)

        saved = lists.upsert_drafts(1, _generate(store_file, [100, 101]).proposed_items)

        flour = next(i for i in saved if i.normalized_name == "flour")
        assert flour.quantity == "2"
        assert flour.unit == "cup"
        assert flour.source_type == "recipe"
        assert flour.source_id == 10
        assert flour.meal_ids == [100, 101]

        eggs = next(i for i in saved if i.normalized_name == "egg")
        assert eggs.priority == "high"

        salt = next(i for i in saved if i.normalized_name == "salt")
        assert salt.quantity == "as needed"

    def test_upsert_updates_quantity_and_keeps_shopper_state(self, store_file):
        lists = ShoppingListStore(store_file)
        saved = lists.upsert_drafts(1, _generate(store_file, [100]).proposed_items)
        flour = next(i for i in saved if i.normalized_name == "flour")
        lists.update_item(flour.id, {"is_completed": True, "aisle": "3"})

        lists.upsert_drafts(1, _generate(store_file, [100, 101]).proposed_items)

        refreshed = lists.get_item(flour.id)
        assert refreshed.quantity == "2"
        assert refreshed.meal_ids == [100, 101]
        assert refreshed.is_completed is True
        assert refreshed.aisle == "3"

    def test_upsert_keys_on_unit(self, store_file):
        lists = ShoppingListStore(store_file)
        lists.add_item(1, {"name": "flour", "quantity": "500", "unit": "g"})

        lists.upsert_drafts(1, _generate(store_file, [100]).proposed_items)

        flour_rows = [i for i in lists.get_items(1) if i.normalized_name == "flour"]
        assert sorted(i.unit for i in flour_rows) == ["cup", "g"]

    def test_pantry_items_not_saved(self, store_file):
        lists = ShoppingListStore(store_file)

        saved = lists.upsert_drafts(1, _generate(store_file, [102]).proposed_items)

        assert [i.normalized_name for i in saved] == ["chicken breast"]

    def test_as_needed_and_counted_lines_kept_apart(self, store_file):
        lists = ShoppingListStore(store_file)
        recipe = RecipeStore(store_file).add({"family_id": 1, "name": "Fish", "servings": 4,
                                              "ingredients": ["2 lemons", "lemon, for serving"]})
        meal = MealStore(store_file).add({"family_id": 1, "scheduled_date": "2024-03-07", "recipe_id": recipe.id})

        lists.upsert_drafts(1, _generate(store_file, [meal.id]).proposed_items)

        lemon_rows = [i for i in lists.get_items(1) if i.normalized_name == "lemon"]
        assert sorted((i.quantity, i.unit) for i in lemon_rows) == [("2", ""), ("as needed", "as needed")]

    def test_tiny_quantity_not_saved_as_zero(self, store_file):
        lists = ShoppingListStore(store_file)
        recipe = RecipeStore(store_file).add({"family_id": 1, "name": "Paella", "servings": 500,
                                              "ingredients": ["1 pinch saffron"]})
        meal = MealStore(store_file).add({"family_id": 1, "scheduled_date": "2024-03-07",
                                          "recipe_id": recipe.id, "servings": 1})

        saved = lists.upsert_drafts(1, _generate(store_file, [meal.id]).proposed_items)

        assert [(i.quantity, i.unit) for i in saved] == [("0.01", "pinch")]

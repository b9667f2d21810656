import logging
from datetime import date
from pathlib import Path

from flask import Flask, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect

from mealcart import config
from mealcart.logging_config import configure_logging
from mealcart.shopping_list import ValidationError, generate_shopping_list
from mealcart.store import (
    FamilyStore,
    MealStore,
    PantryStore,
    RecipeStore,
    ShoppingListStore,
    StoreError,
    StoreFile,
)

configure_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["SECRET_KEY"] = config.SECRET_KEY
csrf = CSRFProtect(app)
limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=[],          # no global limit; apply per-route only
    storage_uri="memory://",
)


def _store() -> StoreFile:
    # Resolved per request so tests can point config.STORE_FILE at a temp file
    return StoreFile(Path(config.STORE_FILE))


def _json_body():
    """Return the request's JSON object, or None when it is missing or malformed."""
    try:
        data = request.get_json()
    except Exception:
        return None
    return data if isinstance(data, dict) else None


def _parse_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value) if int(value) > 0 else None
    return None


def _serialize_family(family: dict) -> dict:
    return {"id": family["id"], "name": family["name"], "createdAt": family.get("created_at")}


def _serialize_recipe(recipe) -> dict:
    return {
        "id": recipe.id,
        "familyId": recipe.family_id,
        "name": recipe.name,
        "ingredients": recipe.ingredients,
        "servings": recipe.servings,
        "tags": recipe.tags,
        "instructions": recipe.instructions,
    }


def _serialize_meal(meal) -> dict:
    return {
        "id": meal.id,
        "familyId": meal.family_id,
        "scheduledDate": meal.scheduled_date.isoformat(),
        "recipeId": meal.recipe_id,
        "servings": meal.servings,
        "mealType": meal.meal_type,
        "status": meal.status,
        "notes": meal.notes,
    }


def _serialize_item(item) -> dict:
    return {
        "id": item.id,
        "shoppingListId": item.shopping_list_id,
        "name": item.name,
        "normalizedName": item.normalized_name,
        "quantity": item.quantity,
        "unit": item.unit,
        "category": item.category,
        "aisle": item.aisle,
        "isCompleted": item.is_completed,
        "notes": item.notes,
        "sourceType": item.source_type,
        "sourceId": item.source_id,
        "mealIds": item.meal_ids,
        "priority": item.priority,
        "createdAt": item.created_at,
        "updatedAt": item.updated_at,
    }


def _serialize_list(shopping_list) -> dict:
    return {
        "id": shopping_list.id,
        "familyId": shopping_list.family_id,
        "name": shopping_list.name,
        "description": shopping_list.description,
        "isActive": shopping_list.is_active,
        "createdAt": shopping_list.created_at,
    }


def _serialize_pantry_item(item) -> dict:
    return {
        "id": item.id,
        "familyId": item.family_id,
        "name": item.name,
        "quantity": item.quantity,
        "unit": item.unit,
        "category": item.category,
        "isLowStock": item.is_low_stock,
    }


@app.errorhandler(StoreError)
def handle_store_error(e):
    logger.exception("Store error")
    return jsonify({"error": f"Storage error: {e}"}), 500


@app.route("/healthz")
def healthz():
    return jsonify({"status": "ok"})


@app.route("/api/families", methods=["POST"])
def create_family():
    logger.info("Creating family")
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    try:
        family = FamilyStore(_store()).add(data.get("name"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(_serialize_family(family)), 201


@app.route("/api/families", methods=["GET"])
def get_families():
    return jsonify([_serialize_family(f) for f in FamilyStore(_store()).get_all()])


@app.route("/api/recipes", methods=["POST"])
def create_recipe():
    """Create a recipe: {familyId, name, ingredients, servings?, tags?, instructions?}."""
    logger.info("Creating recipe")
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    family_id = _parse_id(data.get("familyId"))
    store = _store()
    if family_id is None or not FamilyStore(store).exists(family_id):
        return jsonify({"error": f"Unknown family: {data.get('familyId')}"}), 400
    if not isinstance(data.get("name"), str) or not data["name"].strip():
        return jsonify({"error": "Recipe name is required"}), 400

    fields = {k: data[k] for k in ("name", "ingredients", "servings", "tags", "instructions") if k in data}
    try:
        created = RecipeStore(store).add(dict(fields, family_id=family_id))
    except (ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(_serialize_recipe(created)), 201


@app.route("/api/families/<int:family_id>/recipes", methods=["GET"])
def get_family_recipes(family_id: int):
    logger.debug("Fetching recipes", extra={"family_id": family_id})
    return jsonify([_serialize_recipe(r) for r in RecipeStore(_store()).get_all(family_id)])


@app.route("/api/recipes/<int:recipe_id>", methods=["PUT"])
def update_recipe(recipe_id: int):
    logger.debug("Updating recipe", extra={"recipe_id": recipe_id})
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    try:
        updated = RecipeStore(_store()).update(recipe_id, data)
    except (ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400

    if updated is None:
        return jsonify({"error": "Recipe not found"}), 404
    return jsonify(_serialize_recipe(updated))


@app.route("/api/recipes/<int:recipe_id>", methods=["DELETE"])
def delete_recipe(recipe_id: int):
    logger.debug("Deleting recipe", extra={"recipe_id": recipe_id})
    if not RecipeStore(_store()).delete(recipe_id):
        return jsonify({"error": "Recipe not found"}), 404
    return jsonify({"success": True})


@app.route("/api/meals", methods=["POST"])
def create_meal():
    """Plan a meal: {familyId, scheduledDate, recipeId?, servings?, mealType?, status?, notes?}."""
    logger.info("Creating planned meal")
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    family_id = _parse_id(data.get("familyId"))
    store = _store()
    if family_id is None or not FamilyStore(store).exists(family_id):
        return jsonify({"error": f"Unknown family: {data.get('familyId')}"}), 400

    recipe_id = data.get("recipeId")
    if recipe_id is not None:
        recipe = RecipeStore(store).get(_parse_id(recipe_id) or 0)
        if recipe is None or recipe.family_id != family_id:
            return jsonify({"error": f"Recipe not found: {recipe_id}"}), 400

    fields = {k: data[k] for k in ("scheduledDate", "recipeId", "servings", "mealType", "status", "notes")
              if k in data}
    try:
        created = MealStore(store).add(dict(fields, familyId=family_id))
    except (ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(_serialize_meal(created)), 201


@app.route("/api/families/<int:family_id>/meals", methods=["GET"])
def get_family_meals(family_id: int):
    """Planned meals of a family; ?startDate=&endDate= narrow it to a date range."""
    logger.debug("Fetching meals", extra={"family_id": family_id})
    try:
        start = date.fromisoformat(request.args["startDate"]) if request.args.get("startDate") else None
        end = date.fromisoformat(request.args["endDate"]) if request.args.get("endDate") else None
    except ValueError as e:
        return jsonify({"error": f"Invalid date: {e}"}), 400
    return jsonify([_serialize_meal(m) for m in MealStore(_store()).get_all(family_id, start, end)])


@app.route("/api/shopping-lists/generate", methods=["POST"])
@limiter.limit(config.GENERATE_RATE_LIMIT)
def generate():
    """Propose a consolidated shopping list for a set of planned meals.

    Body: {familyId, mealIds, shoppingListId?}.  With shoppingListId the
    proposal is also saved into that list.
    """
    logger.info("Generating shopping list from meals")
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    family_id = data.get("familyId")
    meal_ids = data.get("mealIds")
    if not isinstance(meal_ids, list):
        return jsonify({"error": "mealIds must be a list of meal ids"}), 400

    store = _store()
    # Only integer ids reach the stores; anything else is rejected by the engine
    family_ok = _parse_id(family_id) == family_id
    valid_meal_ids = [m for m in meal_ids if _parse_id(m) == m]

    try:
        meals = MealStore(store).get_by_ids(family_id, valid_meal_ids) if family_ok else []
        recipe_ids = {m.recipe_id for m in meals if m.recipe_id is not None}
        result = generate_shopping_list(
            family_id,
            meal_ids,
            meals=meals,
            recipes=RecipeStore(store).get_by_ids(family_id, recipe_ids) if family_ok else [],
            pantry=PantryStore(store).get_all(family_id) if family_ok else [],
            known_family_ids=FamilyStore(store).ids(),
        )
    except ValidationError as e:
        logger.info("Rejected shopping list request", extra={"family_id": family_id, "field": e.field})
        return jsonify({"error": str(e), "field": e.field}), 400

    response = result.to_dict()
    if data.get("shoppingListId") is not None:
        shopping_lists = ShoppingListStore(store)
        list_id = _parse_id(data["shoppingListId"])
        target_list = shopping_lists.get_list(list_id) if list_id else None
        if target_list is None or target_list.family_id != family_id:
            return jsonify({"error": f"Shopping list not found: {data['shoppingListId']}"}), 404
        saved = shopping_lists.upsert_drafts(target_list.id, result.proposed_items)
        response["shoppingListId"] = target_list.id
        response["items"] = [_serialize_item(i) for i in saved]

    return jsonify(response)


@app.route("/api/shopping-lists", methods=["POST"])
def create_shopping_list():
    """Create an empty shopping list for a family."""
    logger.info("Creating shopping list")
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    family_id = _parse_id(data.get("familyId"))
    store = _store()
    if family_id is None or not FamilyStore(store).exists(family_id):
        return jsonify({"error": f"Unknown family: {data.get('familyId')}"}), 400

    try:
        created = ShoppingListStore(store).create_list(family_id, data.get("name") or "", data.get("description"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(_serialize_list(created)), 201


@app.route("/api/families/<int:family_id>/shopping-lists", methods=["GET"])
def get_family_shopping_lists(family_id: int):
    logger.debug("Fetching shopping lists", extra={"family_id": family_id})
    lists = ShoppingListStore(_store()).lists_for_family(family_id)
    return jsonify([_serialize_list(s) for s in lists])


@app.route("/api/shopping-lists/<int:list_id>/items", methods=["GET"])
def get_shopping_list_items(list_id: int):
    logger.debug("Fetching shopping list items", extra={"shopping_list_id": list_id})
    shopping_lists = ShoppingListStore(_store())
    if shopping_lists.get_list(list_id) is None:
        return jsonify({"error": "Shopping list not found"}), 404
    return jsonify([_serialize_item(i) for i in shopping_lists.get_items(list_id)])


@app.route("/api/shopping-lists/<int:list_id>/items", methods=["POST"])
def add_shopping_list_item(list_id: int):
    """Add a manual item to a shopping list."""
    logger.debug("Adding item to shopping list", extra={"shopping_list_id": list_id})
    shopping_lists = ShoppingListStore(_store())
    if shopping_lists.get_list(list_id) is None:
        return jsonify({"error": "Shopping list not found"}), 404

    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    item_name = data.get("name")
    if not isinstance(item_name, str) or not item_name.strip():
        return jsonify({"error": "Item name is required"}), 400

    try:
        created = shopping_lists.add_item(list_id, {
            "name": item_name,
            "quantity": data.get("quantity", ""),
            "unit": data.get("unit", ""),
            "category": data.get("category"),
            "aisle": data.get("aisle"),
            "notes": data.get("notes"),
            "priority": data.get("priority", "normal"),
            "source_type": data.get("sourceType", "manual"),
            "source_id": data.get("sourceId"),
        })
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(_serialize_item(created)), 201


@app.route("/api/shopping-list-items/bulk", methods=["PATCH"])
def bulk_update_shopping_list_items():
    """Apply several item updates at once: {updates: [{id, updates: {...}}]}."""
    logger.debug("Bulk updating shopping list items")
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    raw_updates = data.get("updates")
    if not isinstance(raw_updates, list):
        return jsonify({"error": "updates must be a list"}), 400

    updates = []
    for entry in raw_updates:
        item_id = _parse_id(entry.get("id")) if isinstance(entry, dict) else None
        changes = entry.get("updates") if isinstance(entry, dict) else None
        if item_id is None or not isinstance(changes, dict):
            return jsonify({"error": "Each update needs an id and an updates object"}), 400
        updates.append((item_id, changes))

    try:
        updated = ShoppingListStore(_store()).bulk_update_items(updates)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify([_serialize_item(i) for i in updated])


@app.route("/api/shopping-list-items/<int:item_id>", methods=["PATCH"])
def update_shopping_list_item(item_id: int):
    logger.debug("Updating shopping list item", extra={"item_id": item_id})
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    try:
        updated = ShoppingListStore(_store()).update_item(item_id, data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    if updated is None:
        return jsonify({"error": "Shopping list item not found"}), 404
    return jsonify(_serialize_item(updated))


@app.route("/api/shopping-list-items/<int:item_id>", methods=["DELETE"])
def delete_shopping_list_item(item_id: int):
    logger.debug("Deleting shopping list item", extra={"item_id": item_id})
    if not ShoppingListStore(_store()).delete_item(item_id):
        return jsonify({"error": "Shopping list item not found"}), 404
    return jsonify({"success": True})


@app.route("/api/families/<int:family_id>/shopping-items/history", methods=["GET"])
def get_shopping_item_history(family_id: int):
    """Past shopping-list entries for one ingredient across the family's lists."""
    name = request.args.get("name", "")
    if not name.strip():
        return jsonify({"error": "name query parameter is required"}), 400
    history = ShoppingListStore(_store()).item_history(family_id, name)
    return jsonify([_serialize_item(i) for i in history])


@app.route("/api/families/<int:family_id>/pantry", methods=["GET"])
def get_pantry(family_id: int):
    logger.debug("Fetching pantry", extra={"family_id": family_id})
    return jsonify([_serialize_pantry_item(p) for p in PantryStore(_store()).get_all(family_id)])


@app.route("/api/families/<int:family_id>/pantry", methods=["POST"])
def add_pantry_item(family_id: int):
    logger.info("Adding pantry item", extra={"family_id": family_id})
    store = _store()
    if not FamilyStore(store).exists(family_id):
        return jsonify({"error": f"Unknown family: {family_id}"}), 404

    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400
    if not isinstance(data.get("name"), str) or not data["name"].strip():
        return jsonify({"error": "Item name is required"}), 400

    created = PantryStore(store).add(family_id, {
        "name": data["name"],
        "quantity": data.get("quantity", ""),
        "unit": data.get("unit", ""),
        "category": data.get("category"),
        "is_low_stock": bool(data.get("isLowStock", False)),
    })
    return jsonify(_serialize_pantry_item(created)), 201


@app.route("/api/pantry/<int:item_id>", methods=["PATCH"])
def update_pantry_item(item_id: int):
    logger.debug("Updating pantry item", extra={"item_id": item_id})
    data = _json_body()
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400

    try:
        updated = PantryStore(_store()).update(item_id, data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    if updated is None:
        return jsonify({"error": "Pantry item not found"}), 404
    return jsonify(_serialize_pantry_item(updated))


@app.route("/api/pantry/<int:item_id>", methods=["DELETE"])
def delete_pantry_item(item_id: int):
    logger.debug("Deleting pantry item", extra={"item_id": item_id})
    if not PantryStore(_store()).delete(item_id):
        return jsonify({"error": "Pantry item not found"}), 404
    return jsonify({"success": True})


if __name__ == "__main__":
    import os
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_ENV") != "production"
    app.run(host="0.0.0.0", port=port, debug=debug)

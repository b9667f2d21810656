#!/usr/bin/env python3
"""
Print the proposed shopping list for a family's planned meals.

Reads the JSON store directly, runs the consolidation engine and prints the
result grouped by category.  Nothing is written back to the store.

Usage:
    python generate_shopping_list.py --family 1 --meal 3 --meal 4
    python generate_shopping_list.py --store data/mealcart.json --family 1 --meal 3 --json
"""

import argparse
import json
import sys
from pathlib import Path

# Add parent directory to path to import mealcart modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from mealcart import config
from mealcart.logging_config import configure_logging
from mealcart.shopping_list import ValidationError, generate_shopping_list
from mealcart.store import FamilyStore, MealStore, PantryStore, RecipeStore, StoreError, StoreFile


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a consolidated, pantry-aware shopping list for planned meals"
    )
    parser.add_argument(
        '--store',
        default=config.STORE_FILE,
        help=f'Path to the JSON store (default: {config.STORE_FILE})'
    )
    parser.add_argument('--family', type=int, required=True, help='Family id')
    parser.add_argument(
        '--meal',
        type=int,
        action='append',
        default=[],
        dest='meals',
        help='Planned meal id (repeat for several meals)'
    )
    parser.add_argument('--json', action='store_true', help='Print the raw JSON result')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("WARNING")

    store = StoreFile(args.store)
    try:
        meals = MealStore(store).get_by_ids(args.family, args.meals)
        recipe_ids = {m.recipe_id for m in meals if m.recipe_id is not None}
        result = generate_shopping_list(
            args.family,
            args.meals,
            meals=meals,
            recipes=RecipeStore(store).get_by_ids(args.family, recipe_ids),
            pantry=PantryStore(store).get_all(args.family),
            known_family_ids=FamilyStore(store).ids(),
        )
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except StoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    print("=" * 60)
    print(f"Shopping list for family {args.family} ({len(args.meals)} meal(s))")
    print("=" * 60)
    for category, items in result.items_by_category.items():
        print(f"\n{category}")
        for item in items:
            flag = " [!]" if item.priority == "high" else ""
            print(f"  - {item.label}{flag}")

    if result.skipped_for_pantry:
        print("\nAlready in the pantry:")
        for pantry_item in result.skipped_for_pantry:
            print(f"  ✓ {pantry_item.name}")

    if result.skipped:
        print("\nSkipped:")
        for report in result.skipped:
            print(f"  → {report.kind} {report.reference}: {report.reason}")

    return 0


if __name__ == "__main__":
    sys.exit(main())

import os
import secrets
import sys


# Check if we're running in a test environment
def _is_testing():
    """Check if code is running under pytest."""
    return "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ


# Flask secret key, used for session signing and CSRF token generation.
# Set SECRET_KEY in the environment for production; a random key is
# generated on startup otherwise (sessions won't survive restarts).
SECRET_KEY = os.environ.get("SECRET_KEY", secrets.token_hex(32))

# JSON document holding families, recipes, meals, pantry and shopping lists
STORE_FILE = os.environ.get("MEALCART_STORE_FILE", "data/mealcart.json")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING" if _is_testing() else "INFO")

# Similarity threshold (0–100) used when matching an ingredient against the
# pantry.  Exact normalized-name matches always win; this only catches small
# spelling differences such as "chilli" vs "chili".  Kept high so that
# "chicken" and "chicken breast" stay distinct.
PANTRY_MATCH_THRESHOLD = int(os.environ.get("PANTRY_MATCH_THRESHOLD", "90"))

DEFAULT_CATEGORY = "Uncategorized"
AS_NEEDED_LABEL = "as needed"

# Generation parses every ingredient of every requested meal; keep it bounded.
GENERATE_RATE_LIMIT = os.environ.get("GENERATE_RATE_LIMIT", "30 per minute")

# Decimal places kept when a merged quantity is rendered as text
QUANTITY_PRECISION = 2

MEAL_STATUSES = ("planned", "prepared", "completed")
MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")
ITEM_SOURCE_TYPES = ("manual", "recipe", "recurring")

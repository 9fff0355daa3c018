"""
State file management for Vendure Catalog Importer.

Handles import_state.json (restore point used by resume/overwrite modes) and
the product and collections output reports.
"""

import os
import json
import logging
from datetime import datetime

# File paths
APP_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
IMPORT_STATE_FILE = os.path.join(APP_DIR, "import_state.json")


def load_import_state():
    """
    Load the import restore point from import_state.json.

    Returns:
        Dictionary with a 'products' list and a 'products_dict' index keyed by slug
    """
    try:
        if os.path.exists(IMPORT_STATE_FILE):
            with open(IMPORT_STATE_FILE, 'r', encoding='utf-8') as f:
                data = json.load(f)
            # Convert list to dict for faster lookups
            products_dict = {}
            for product in data.get("products", []):
                slug = product.get("slug", "").strip()
                if slug:
                    products_dict[slug] = product
            data["products"] = list(products_dict.values())
            data["products_dict"] = products_dict
            return data
    except json.JSONDecodeError as e:
        logging.warning(f"Failed to parse import_state.json: {e}. Starting fresh.")
    except IOError as e:
        logging.warning(f"Failed to read import_state.json: {e}. Starting fresh.")

    return {
        "products": [],
        "products_dict": {},
        "last_updated": datetime.now().isoformat()
    }


def save_import_state(state):
    """Save the import restore point to import_state.json."""
    try:
        save_data = {
            "products": state.get("products", []),
            "last_updated": datetime.now().isoformat()
        }
        with open(IMPORT_STATE_FILE, 'w', encoding='utf-8') as f:
            json.dump(save_data, f, indent=4)
    except IOError as e:
        logging.error(f"Failed to write import_state.json: {e}")


def update_row_in_state(state, row_data):
    """
    Record the outcome of one row in the restore point.

    Args:
        state: Dictionary returned by load_import_state
        row_data: Dictionary with at least 'slug' and 'status'

    Returns:
        Updated state dictionary
    """
    slug = (row_data.get("slug") or "").strip()
    if not slug:
        return state

    products_dict = state.setdefault("products_dict", {})
    entry = dict(products_dict.get(slug, {}))
    entry.update(row_data)
    entry["updated_at"] = datetime.now().isoformat()
    products_dict[slug] = entry

    state["products"] = list(products_dict.values())
    state["last_updated"] = datetime.now().isoformat()
    return state


def imported_product(state, slug):
    """Return the restore entry of a slug that was imported successfully, else None."""
    entry = state.get("products_dict", {}).get(slug)
    if entry and entry.get("status") == "created":
        return entry
    return None


def write_json_report(path, payload):
    """
    Write a JSON report, creating its directory when needed.

    Returns:
        True on success, False otherwise
    """
    if not path:
        return False
    try:
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=4, ensure_ascii=False)
        return True
    except (IOError, OSError) as e:
        logging.error(f"Failed to write report {path}: {e}")
        return False


def write_product_output(path, counters, results, started_at=None):
    """Write per-row results and run counters to the product output file."""
    payload = {
        "summary": {
            "created": counters.created,
            "failed": counters.failed,
            "skipped": counters.skipped,
            "total": counters.total
        },
        "started_at": started_at,
        "finished_at": datetime.now().isoformat(),
        "products": [result.model_dump(mode="json") for result in results]
    }
    return write_json_report(path, payload)


def write_collections_report(path, collections):
    """Write the collections created during the run."""
    payload = {
        "collections": list(collections),
        "last_updated": datetime.now().isoformat()
    }
    return write_json_report(path, payload)

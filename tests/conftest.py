"""
Pytest configuration and shared fixtures for Vendure Catalog Importer tests.
"""

import pytest
import json
import tempfile
import threading
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from importer_modules.config import ENV_OVERRIDE_KEYS, LEGACY_INPUT_KEYS
from importer_modules.vendure_api import VendureAPIError


# ============================================================================
# IN-MEMORY CATALOG
# ============================================================================

class FakeCatalog:
    """
    In-memory stand-in for VendureClient.

    Slugs are unique across all collections, like on a real server. Failures
    are injected per method through `failures`: a list of exceptions raised
    (and consumed) one per call before the method runs.
    """

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.variant_errors = {}
        self.terms = {}
        self.collections = {}
        self.collection_by_slug = {}
        self.products = {}
        self.option_groups = {}
        self.variants = []
        self.assets = {}
        self.links = []
        self.deleted = []
        self.reindexed = 0
        self._seq = 0
        self._lock = threading.Lock()

    def _next_id(self, kind):
        with self._lock:
            self._seq += 1
            return f"{kind}-{self._seq}"

    def _call(self, name, *args):
        self.calls.append((name, args))
        queued = self.failures.get(name)
        if queued:
            raise queued.pop(0)

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    # Terms

    def find_term_by_code(self, code):
        self._call("find_term_by_code", code)
        term = self.terms.get(code)
        if not term:
            return None
        siblings = [{"id": t["id"], "code": t["code"]} for t in self.terms.values()]
        return dict(term, siblings=siblings)

    def create_term(self, code, name):
        self._call("create_term", code, name)
        if code in self.terms:
            raise VendureAPIError(f"Facet value with code '{code}' already exists")
        term = {"id": self._next_id("term"), "code": code, "name": name}
        self.terms[code] = term
        return dict(term)

    # Collections

    def add_collection(self, name, slug, parent_id=None, filter_term_id=None):
        """Seed a collection as if an earlier run had created it."""
        collection_id = self._next_id("col")
        self.collections[collection_id] = {
            "id": collection_id, "name": name, "slug": slug,
            "parent_id": parent_id, "filter_term_id": filter_term_id
        }
        self.collection_by_slug[slug] = collection_id
        return collection_id

    def find_collection_by_slug(self, slug):
        self._call("find_collection_by_slug", slug)
        collection_id = self.collection_by_slug.get(slug)
        if not collection_id:
            return None
        c = self.collections[collection_id]
        return {"id": c["id"], "slug": c["slug"], "name": c["name"], "parent_id": c["parent_id"]}

    def create_collection(self, name, slug, parent_id, filter_term_id):
        self._call("create_collection", name, slug, parent_id, filter_term_id)
        if slug in self.collection_by_slug:
            raise VendureAPIError(f"The slug '{slug}' is already in use")
        collection_id = self.add_collection(name, slug, parent_id, filter_term_id)
        return {"id": collection_id, "slug": slug, "name": name, "parent_id": parent_id}

    def link_product_to_collection(self, collection_id, product_id):
        self._call("link_product_to_collection", collection_id, product_id)
        self.links.append((collection_id, product_id))

    # Products

    def create_product(self, name, slug, description, asset_ids=None, featured_asset_id=None):
        self._call("create_product", name, slug, description)
        product_id = self._next_id("prod")
        self.products[product_id] = {
            "id": product_id, "name": name, "slug": slug, "description": description,
            "asset_ids": list(asset_ids or []), "featured_asset_id": featured_asset_id,
            "term_ids": [], "option_group_ids": []
        }
        return {"id": product_id, "name": name, "slug": slug}

    def update_product_terms(self, product_id, term_ids):
        self._call("update_product_terms", product_id, list(term_ids))
        self.products[product_id]["term_ids"] = list(term_ids)

    def delete_product(self, product_id):
        self._call("delete_product", product_id)
        self.deleted.append(product_id)
        return self.products.pop(product_id, None) is not None

    # Options

    def find_option_group(self, product_id, code):
        self._call("find_option_group", product_id, code)
        product = self.products.get(product_id, {})
        for group_id in product.get("option_group_ids", []):
            group = self.option_groups[group_id]
            if group["code"] == code:
                return {
                    "id": group_id, "code": code,
                    "options": [{"id": i, "code": c} for c, i in group["options"].items()]
                }
        return None

    def create_option_group(self, product_id, code, name):
        self._call("create_option_group", product_id, code, name)
        group_id = self._next_id("group")
        self.option_groups[group_id] = {"id": group_id, "code": code, "name": name, "options": {}}
        return {"id": group_id, "code": code}

    def bind_option_group_to_product(self, product_id, group_id):
        self._call("bind_option_group_to_product", product_id, group_id)
        bound = self.products[product_id]["option_group_ids"]
        if group_id not in bound:
            bound.append(group_id)

    def find_option_value(self, group_id, code):
        self._call("find_option_value", group_id, code)
        option_id = self.option_groups[group_id]["options"].get(code)
        return {"id": option_id, "code": code} if option_id else None

    def create_option_value(self, group_id, code, name):
        self._call("create_option_value", group_id, code, name)
        options = self.option_groups[group_id]["options"]
        if code in options:
            raise VendureAPIError(f"Option '{code}' already exists")
        option_id = self._next_id("opt")
        options[code] = option_id
        return {"id": option_id, "code": code}

    # Variants

    def create_variants(self, product_id, records):
        self._call("create_variants", product_id, list(records))
        results = []
        for record in records:
            if record.sku in self.variant_errors:
                results.append({"errorCode": "DUPLICATE_SKU", "message": self.variant_errors[record.sku]})
                continue
            variant = dict(record.to_input(product_id, "en"), id=self._next_id("var"))
            self.variants.append(variant)
            results.append({"id": variant["id"], "sku": record.sku, "price": record.price_minor})
        return results

    # Assets

    def upload_asset(self, data, filename, content_type):
        self._call("upload_asset", filename)
        asset_id = self._next_id("asset")
        self.assets[asset_id] = filename
        return asset_id

    def reindex_search(self):
        self._call("reindex_search")
        self.reindexed += 1
        return {"id": "job-1", "state": "PENDING"}


@pytest.fixture
def catalog():
    """Fresh in-memory catalog."""
    return FakeCatalog()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays instead of waiting."""
    delays = []

    def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


def fake_downloader(url, timeout=15):
    """Image downloader that never touches the network."""
    if "broken" in url:
        return None
    return b"\x89PNG fake", url.rsplit("/", 1)[-1] or "image.png", "image/png"


@pytest.fixture
def downloader():
    return fake_downloader


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================

@pytest.fixture
def sofa_record():
    """Simple product row (no variants)."""
    return {
        "title": "Sofa",
        "categories": "Living Room|Sectional",
        "price": "$1,299.00",
        "variants_json": None,
    }


@pytest.fixture
def variable_record():
    """Variable product row with two colour variations."""
    return {
        "title": "Armchair",
        "sku": "ARM",
        "categories": "category:Living Room|category:Chairs",
        "price": "90",
        "images": "https://cdn.example.com/armchair.jpg|https://cdn.example.com/armchair-2.jpg",
        "variants_json": json.dumps([
            {"sku": "A1", "attributes": {"attribute_pa_color": "Black"}, "display_price": "100"},
            {"sku": "A2", "attributes": {"attribute_pa_color": "White"}, "display_price": "110"},
        ]),
    }


# ============================================================================
# TEMPORARY FILE FIXTURES
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config.json file."""
    config_path = temp_dir / "config.json"
    config_data = {
        "ADMIN_API": "http://vendure.test/admin-api",
        "ADMIN_USER": "importer",
        "ADMIN_PASS": "secret",
        "INPUT_FILE": "",
        "PRODUCT_OUTPUT_FILE": "",
        "COLLECTIONS_OUTPUT_FILE": "",
        "LOG_FILE": str(temp_dir / "test.log")
    }
    with open(config_path, 'w') as f:
        json.dump(config_data, f, indent=4)
    return config_path


@pytest.fixture
def isolated_config(monkeypatch, temp_dir):
    """Point config.json and .env at the temp directory and clear override env vars."""
    import importer_modules.config as config_module

    monkeypatch.setattr(config_module, 'CONFIG_FILE', str(temp_dir / 'config.json'))
    monkeypatch.setattr(config_module, 'ENV_FILE', str(temp_dir / '.env'))
    for key in ENV_OVERRIDE_KEYS + LEGACY_INPUT_KEYS:
        monkeypatch.delenv(key, raising=False)
    return temp_dir


# ============================================================================
# MONKEYPATCH FIXTURES FOR STATE FILES
# ============================================================================

@pytest.fixture
def mock_state_files(monkeypatch, temp_dir):
    """Mock the import state file path to use temp directory."""
    import importer_modules.state as state_module

    monkeypatch.setattr(state_module, 'IMPORT_STATE_FILE', str(temp_dir / 'import_state.json'))
    return temp_dir


# ============================================================================
# UTILITY FIXTURES
# ============================================================================

@pytest.fixture
def mock_status_fn():
    """Mock status function that collects status messages."""
    messages = []

    def status_fn(msg):
        messages.append(msg)

    status_fn.messages = messages
    return status_fn

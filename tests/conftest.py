"""
Pytest configuration and shared fixtures for Catalog Taxonomy Admin tests.
"""

import copy
import itertools
import json
import sys
import tempfile
import threading
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# ============================================================================
# FAKE CATALOG API
# ============================================================================

class FakeCatalogApi:
    """
    In-memory stand-in for catalog_modules.catalog_api.

    Exposes the same functions, records every call, and supports failure
    injection and gates. It is called from worker threads (asyncio.to_thread),
    so shared state is guarded by a lock.

    Attributes:
        categories: Raw category records returned by list_categories
        sub_subcategories: subcategory id -> raw records
        failures: call name, or (call name, first arg), -> exception to raise
        gates: subcategory id -> threading.Event the next branch fetch waits on
            (one-shot; the gate is removed once a fetch picks it up)
    """

    def __init__(self, categories=None, sub_subcategories=None):
        self.categories = categories or []
        self.sub_subcategories = sub_subcategories or {}
        self.failures = {}
        self.gates = {}
        self.calls = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _record(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)
            error = None
            if args and isinstance(args[0], str):
                error = self.failures.get((name, args[0]))
            error = error or self.failures.get(name)
        if error is not None:
            raise error

    def count(self, name, *args):
        with self._lock:
            return sum(1 for call in self.calls if call[0] == name and call[1:1 + len(args)] == args)

    def reset_calls(self):
        with self._lock:
            self.calls.clear()

    def _new_id(self, prefix):
        return f"{prefix}-new-{next(self._ids)}"

    def _find_category(self, category_id):
        return next((c for c in self.categories if c.get("_id", c.get("id")) == category_id), None)

    def _find_subcategory(self, subcategory_id):
        for category in self.categories:
            for sub in category.get("subcategories", []):
                if sub.get("_id", sub.get("id")) == subcategory_id:
                    return category, sub
        return None, None

    # -- categories ---------------------------------------------------------

    def list_categories(self, cfg):
        self._record("list_categories")
        return copy.deepcopy(self.categories)

    def create_category(self, payload, cfg):
        self._record("create_category", payload)
        record = dict(payload, _id=self._new_id("c"), subcategories=[])
        self.categories.append(record)
        return copy.deepcopy(record)

    def update_category(self, category_id, payload, cfg):
        self._record("update_category", category_id, payload)
        category = self._find_category(category_id)
        category.update(payload)
        return copy.deepcopy(category)

    def delete_category(self, category_id, cfg):
        self._record("delete_category", category_id)
        self.categories = [c for c in self.categories if c.get("_id", c.get("id")) != category_id]

    def toggle_category_status(self, category_id, cfg):
        self._record("toggle_category_status", category_id)
        category = self._find_category(category_id)
        category["isActive"] = not category.get("isActive", True)
        return copy.deepcopy(category)

    # -- subcategories ------------------------------------------------------

    def list_subcategories(self, cfg, category_id=None):
        self._record("list_subcategories", category_id)
        return []

    def create_subcategory(self, payload, cfg):
        self._record("create_subcategory", payload)
        record = dict(payload, _id=self._new_id("s"))
        self._find_category(payload["categoryId"]).setdefault("subcategories", []).append(record)
        return copy.deepcopy(record)

    def update_subcategory(self, subcategory_id, payload, cfg):
        self._record("update_subcategory", subcategory_id, payload)
        _, sub = self._find_subcategory(subcategory_id)
        sub.update(payload)
        return copy.deepcopy(sub)

    def delete_subcategory(self, subcategory_id, cfg):
        self._record("delete_subcategory", subcategory_id)
        category, sub = self._find_subcategory(subcategory_id)
        category["subcategories"].remove(sub)

    def toggle_subcategory_status(self, subcategory_id, cfg):
        self._record("toggle_subcategory_status", subcategory_id)
        _, sub = self._find_subcategory(subcategory_id)
        sub["isActive"] = not sub.get("isActive", True)
        return copy.deepcopy(sub)

    # -- sub-subcategories --------------------------------------------------

    def list_sub_subcategories(self, subcategory_id, cfg):
        # The response (or failure) is decided before the gate, so a held
        # fetch delivers what the server had when the request arrived
        error, items = None, None
        try:
            self._record("list_sub_subcategories", subcategory_id)
        except Exception as e:
            error = e
        with self._lock:
            if error is None:
                items = copy.deepcopy(self.sub_subcategories.get(subcategory_id, []))
            gate = self.gates.pop(subcategory_id, None)
        if gate is not None:
            gate.wait(5)
        if error is not None:
            raise error
        return items

    def _find_sub_subcategory(self, sub_subcategory_id):
        for items in self.sub_subcategories.values():
            for item in items:
                if item.get("_id", item.get("id")) == sub_subcategory_id:
                    return items, item
        return None, None

    def create_sub_subcategory(self, payload, cfg):
        self._record("create_sub_subcategory", payload)
        record = dict(payload, _id=self._new_id("ss"))
        with self._lock:
            self.sub_subcategories.setdefault(payload["subcategoryId"], []).append(record)
        return copy.deepcopy(record)

    def update_sub_subcategory(self, sub_subcategory_id, payload, cfg):
        self._record("update_sub_subcategory", sub_subcategory_id, payload)
        _, item = self._find_sub_subcategory(sub_subcategory_id)
        item.update(payload)
        return copy.deepcopy(item)

    def delete_sub_subcategory(self, sub_subcategory_id, cfg):
        self._record("delete_sub_subcategory", sub_subcategory_id)
        items, item = self._find_sub_subcategory(sub_subcategory_id)
        items.remove(item)

    def toggle_sub_subcategory_status(self, sub_subcategory_id, cfg):
        self._record("toggle_sub_subcategory_status", sub_subcategory_id)
        _, item = self._find_sub_subcategory(sub_subcategory_id)
        item["isActive"] = not item.get("isActive", True)
        return copy.deepcopy(item)


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================

@pytest.fixture
def sample_categories():
    """Raw category list as the server returns it (mixed id styles, missing flags)."""
    return [
        {
            "_id": "c1",
            "name": "Phones",
            "description": "Mobile phones",
            "subcategories": [
                {"_id": "s1", "name": "Android", "description": "Android phones"},
                {"_id": "s2", "name": "iPhone", "description": "Apple phones", "isActive": False}
            ]
        },
        {
            "id": "c2",
            "name": "Clothing",
            "description": "Fashion and apparel",
            "isActive": True,
            "subcategories": [
                {"id": "s3", "name": "Men", "description": "Men's clothing"}
            ]
        }
    ]


@pytest.fixture
def sample_sub_subcategories():
    """Raw sub-subcategory lists keyed by subcategory id."""
    return {
        "s1": [
            {"_id": "ss1", "name": "Pixel", "categoryId": "c1", "subcategoryId": "s1"},
            {"_id": "ss2", "name": "Galaxy", "subcategoryId": "s1", "isActive": False}
        ],
        "s2": [
            {"_id": "ss3", "name": "iPhone 15", "subcategoryId": "s2"}
        ],
        "s3": []
    }


@pytest.fixture
def fake_api(sample_categories, sample_sub_subcategories):
    return FakeCatalogApi(sample_categories, sample_sub_subcategories)


@pytest.fixture
def make_fake_api():
    """Factory for a FakeCatalogApi with custom data."""
    return FakeCatalogApi


@pytest.fixture
def cfg():
    """Configuration dictionary used by store and API tests."""
    return {
        "CATALOG_API_URL": "https://catalog.example.com/api",
        "CATALOG_API_TOKEN": "test_token_12345",
        "REQUEST_TIMEOUT": 30,
        "LANGUAGE": "en",
        "EAGER_LOAD_SUB_SUBCATEGORIES": True,
        "INVALIDATE_TREE_ON_SUB_SUBCATEGORY_CHANGE": True
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
        "CATALOG_API_URL": "https://catalog.example.com/api",
        "CATALOG_API_TOKEN": "test_token_12345",
        "LOG_FILE": str(temp_dir / "test.log")
    }
    with open(config_path, 'w') as f:
        json.dump(config_data, f, indent=4)
    return config_path


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

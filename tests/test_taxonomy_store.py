"""
Tests for catalog_modules/taxonomy_store.py

Tests tree population, partial failure, stale-result handling, invalidation
and expansion behavior against an in-memory Catalog API.
"""

import pytest
import asyncio
import logging
import sys
import threading
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_modules.errors import ApiError, GENERIC_ERROR_MESSAGE, TransportError
from catalog_modules.taxonomy_store import CATEGORIES_KEY, TaxonomyStore, sub_subcategories_key


async def wait_for(predicate, timeout=5.0):
    """Poll until predicate() is true or fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def store(cfg, fake_api):
    return TaxonomyStore(cfg, api=fake_api)


# ============================================================================
# POPULATION TESTS
# ============================================================================

class TestLoadTree:
    """Tests for TaxonomyStore.load_tree()."""

    @pytest.mark.asyncio
    async def test_eager_population(self, store, fake_api):
        """Test the category fetch is followed by one branch fetch per subcategory."""
        snapshot = await store.load_tree()

        assert [c.id for c in snapshot.categories] == ["c1", "c2"]
        assert fake_api.count("list_categories") == 1
        assert fake_api.count("list_sub_subcategories") == 3
        assert [i.id for i in snapshot.sub_sub_by_parent["s1"]] == ["ss1", "ss2"]
        assert snapshot.sub_sub_by_parent["s3"] == []
        assert snapshot.loading is False
        assert snapshot.load_error is None

    @pytest.mark.asyncio
    async def test_children_attached_to_tree(self, store):
        snapshot = await store.load_tree()

        android = snapshot.categories[0].subcategories[0]
        assert [i.name for i in android.sub_subcategories] == ["Pixel", "Galaxy"]
        assert all(i.category_id == "c1" and i.subcategory_id == "s1" for i in android.sub_subcategories)

    @pytest.mark.asyncio
    async def test_missing_is_active_defaults_true(self, cfg, make_fake_api):
        """Test records without isActive come out active."""
        api = make_fake_api([{"_id": "c1", "name": "Phones", "subcategories": [{"_id": "s1", "name": "Android"}]}])
        store = TaxonomyStore(cfg, api=api)

        snapshot = await store.load_tree()

        category = snapshot.categories[0]
        assert category.is_active is True
        assert category.subcategories[0].is_active is True

    @pytest.mark.asyncio
    async def test_partial_branch_failure(self, store, fake_api, caplog):
        """Test one failing branch yields an empty list without failing its siblings."""
        fake_api.failures[("list_sub_subcategories", "s2")] = TransportError("connection reset")

        with caplog.at_level(logging.WARNING):
            snapshot = await store.load_tree()

        assert snapshot.load_error is None
        assert snapshot.sub_sub_by_parent["s2"] == []
        assert snapshot.branch_errors == {"s2": GENERIC_ERROR_MESSAGE}
        assert len(snapshot.sub_sub_by_parent["s1"]) == 2
        assert snapshot.is_branch_loaded("s3")
        assert "failed for 1 of 3 subcategories" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_branch_is_retryable(self, store, fake_api):
        fake_api.failures[("list_sub_subcategories", "s2")] = ApiError(500, "Database unavailable")
        snapshot = await store.load_tree()
        assert snapshot.branch_errors["s2"] == "Database unavailable"

        del fake_api.failures[("list_sub_subcategories", "s2")]
        result = await store.refetch_sub_subcategories("s2")

        assert result.error is None
        assert [i.id for i in result.items] == ["ss3"]
        snapshot = store.read()
        assert "s2" not in snapshot.branch_errors
        assert [i.id for i in snapshot.sub_sub_by_parent["s2"]] == ["ss3"]

    @pytest.mark.asyncio
    async def test_out_of_scope_records_filtered(self, store, fake_api):
        """Test records the server returns for another subcategory stay out of the branch."""
        fake_api.sub_subcategories["s1"].append({"_id": "ss-stray", "name": "Stray", "subcategoryId": "s3"})

        snapshot = await store.load_tree()

        assert "ss-stray" not in [i.id for i in snapshot.sub_sub_by_parent["s1"]]
        assert snapshot.sub_sub_by_parent["s3"] == []

    @pytest.mark.asyncio
    async def test_category_failure_keeps_previous_tree(self, store, fake_api):
        """Test a failed category fetch records the error and keeps the last good tree."""
        await store.load_tree()
        fake_api.failures["list_categories"] = ApiError(503, "Service unavailable")

        snapshot = await store.invalidate_categories()

        assert snapshot.load_error == "Service unavailable"
        assert snapshot.loading is False
        assert [c.id for c in snapshot.categories] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_malformed_category_response(self, cfg, make_fake_api):
        api = make_fake_api()
        api.categories = {"unexpected": "shape"}
        store = TaxonomyStore(cfg, api=api)

        snapshot = await store.load_tree()

        assert snapshot.categories == []
        assert snapshot.load_error is None

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_category_request(self, store, fake_api):
        """Test overlapping loads issue one category request and only the latest populates."""
        await asyncio.gather(store.load_tree(), store.load_tree())

        snapshot = store.read()
        assert fake_api.count("list_categories") == 1
        assert fake_api.count("list_sub_subcategories") == 3
        assert [c.id for c in snapshot.categories] == ["c1", "c2"]
        assert snapshot.loading is False

    @pytest.mark.asyncio
    async def test_slow_branch_does_not_block_siblings(self, store, fake_api):
        """Test resolved branches are readable while another branch is still in flight."""
        gate = threading.Event()
        fake_api.gates["s1"] = gate
        load = asyncio.ensure_future(store.load_tree())
        try:
            await wait_for(lambda: store.read().is_branch_loaded("s2") and store.read().is_branch_loaded("s3"))

            snapshot = store.read()
            assert not snapshot.is_branch_loaded("s1")
            assert snapshot.loading is True
        finally:
            gate.set()

        snapshot = await load
        assert len(snapshot.sub_sub_by_parent["s1"]) == 2
        assert snapshot.loading is False

    @pytest.mark.asyncio
    async def test_localized_names(self, cfg, make_fake_api):
        api = make_fake_api([{"_id": "c1", "name": {"en": "Phones", "ar": "هواتف"}}])
        cfg["LANGUAGE"] = "ar"
        store = TaxonomyStore(cfg, api=api)

        snapshot = await store.load_tree()

        assert snapshot.categories[0].name == "هواتف"


# ============================================================================
# STALE RESULT TESTS
# ============================================================================

class TestStaleResults:
    """Tests for discarding results that arrive after the tree changed."""

    @pytest.mark.asyncio
    async def test_result_for_removed_subcategory_discarded(self, store, fake_api, caplog):
        """Test an in-flight branch fetch is dropped when its subcategory left the tree."""
        gate = threading.Event()
        fake_api.gates["s2"] = gate
        first_load = asyncio.ensure_future(store.load_tree())
        try:
            await wait_for(lambda: fake_api.count("list_sub_subcategories", "s2") == 1)

            # s2 is deleted on the server while its fetch is pending
            fake_api.categories[0]["subcategories"] = [
                s for s in fake_api.categories[0]["subcategories"] if s["_id"] != "s2"
            ]
            snapshot = await store.invalidate_categories()
            assert store.find_subcategory("s2") is None
            assert not snapshot.is_branch_loaded("s2")
        finally:
            gate.set()

        with caplog.at_level(logging.INFO):
            await first_load

        snapshot = store.read()
        assert "s2" not in snapshot.sub_sub_by_parent
        assert "no longer in the tree" in caplog.text
        assert not store.cache.is_fresh(sub_subcategories_key("s2"))

    @pytest.mark.asyncio
    async def test_older_branch_result_does_not_overwrite_newer(self, store, fake_api, caplog):
        """Test a slow fetch from an earlier load cannot replace a newer branch result."""
        gate = threading.Event()
        fake_api.gates["s1"] = gate
        first_load = asyncio.ensure_future(store.load_tree())
        try:
            # The first s1 fetch has read the server state and is now held
            await wait_for(lambda: "s1" not in fake_api.gates)

            fake_api.sub_subcategories["s1"][0]["isActive"] = False
            snapshot = await store.invalidate_categories()
            assert {i.id: i.is_active for i in snapshot.sub_sub_by_parent["s1"]} == {"ss1": False, "ss2": False}
        finally:
            gate.set()

        with caplog.at_level(logging.DEBUG):
            await first_load

        snapshot = store.read()
        assert {i.id: i.is_active for i in snapshot.sub_sub_by_parent["s1"]} == {"ss1": False, "ss2": False}
        assert "a newer fetch has started" in caplog.text

    @pytest.mark.asyncio
    async def test_older_branch_failure_does_not_clear_newer(self, store, fake_api):
        """Test a late failure from an earlier load leaves a newer successful branch intact."""
        fake_api.failures[("list_sub_subcategories", "s1")] = TransportError("Connection reset")
        gate = threading.Event()
        fake_api.gates["s1"] = gate
        first_load = asyncio.ensure_future(store.load_tree())
        try:
            await wait_for(lambda: "s1" not in fake_api.gates)

            del fake_api.failures[("list_sub_subcategories", "s1")]
            snapshot = await store.invalidate_categories()
            assert len(snapshot.sub_sub_by_parent["s1"]) == 2
        finally:
            gate.set()

        await first_load

        snapshot = store.read()
        assert [i.id for i in snapshot.sub_sub_by_parent["s1"]] == ["ss1", "ss2"]
        assert "s1" not in snapshot.branch_errors

    @pytest.mark.asyncio
    async def test_refetch_of_unknown_subcategory(self, store):
        await store.load_tree()

        result = await store.refetch_sub_subcategories("nope")

        assert result.discarded is True
        assert "nope" not in store.read().sub_sub_by_parent


# ============================================================================
# INVALIDATION TESTS
# ============================================================================

class TestInvalidation:
    """Tests for invalidate_categories() and invalidate_sub_subcategories()."""

    @pytest.mark.asyncio
    async def test_second_load_served_from_cache(self, store, fake_api):
        await store.load_tree()
        await store.load_tree()

        assert fake_api.count("list_categories") == 1
        assert fake_api.count("list_sub_subcategories") == 3

    @pytest.mark.asyncio
    async def test_invalidate_categories_refetches_everything(self, store, fake_api):
        await store.load_tree()
        fake_api.reset_calls()

        await store.invalidate_categories()

        assert fake_api.count("list_categories") == 1
        assert fake_api.count("list_sub_subcategories") == 3

    @pytest.mark.asyncio
    async def test_invalidate_categories_without_branches(self, store, fake_api):
        await store.load_tree()
        fake_api.reset_calls()

        snapshot = await store.invalidate_categories(include_branches=False)

        assert fake_api.count("list_categories") == 1
        assert fake_api.count("list_sub_subcategories") == 0
        assert len(snapshot.sub_sub_by_parent["s1"]) == 2

    @pytest.mark.asyncio
    async def test_invalidate_one_branch_with_safety_net(self, store, fake_api):
        """Test a branch invalidation refetches that branch plus the category list only."""
        await store.load_tree()
        fake_api.reset_calls()
        fake_api.sub_subcategories["s1"].append({"_id": "ss4", "name": "OnePlus", "subcategoryId": "s1"})

        await store.invalidate_sub_subcategories("s1")

        assert fake_api.count("list_sub_subcategories", "s1") == 1
        assert fake_api.count("list_sub_subcategories") == 1
        assert fake_api.count("list_categories") == 1
        assert [i.id for i in store.read().sub_sub_by_parent["s1"]] == ["ss1", "ss2", "ss4"]

    @pytest.mark.asyncio
    async def test_safety_net_can_be_disabled(self, store, fake_api, cfg):
        cfg["INVALIDATE_TREE_ON_SUB_SUBCATEGORY_CHANGE"] = False
        await store.load_tree()
        fake_api.reset_calls()

        await store.invalidate_sub_subcategories("s1")

        assert fake_api.count("list_sub_subcategories", "s1") == 1
        assert fake_api.count("list_categories") == 0
        assert store.cache.is_fresh(CATEGORIES_KEY)

    @pytest.mark.asyncio
    async def test_deleted_category_and_descendants_disappear(self, store, fake_api):
        """Test a category removed on the server is gone with its whole subtree after reload."""
        await store.load_tree()
        store.toggle_category("c1")
        await store.toggle_subcategory("s1")
        assert store.read().is_branch_loaded("s1")

        fake_api.delete_category("c1", None)
        snapshot = await store.invalidate_categories()

        assert [c.id for c in snapshot.categories] == ["c2"]
        assert store.find_subcategory("s1") is None
        assert store.find_sub_subcategory("ss1") is None
        assert "s1" not in snapshot.sub_sub_by_parent


# ============================================================================
# EXPANSION TESTS
# ============================================================================

class TestExpansion:
    """Tests for the store's expand/collapse operations."""

    @pytest.mark.asyncio
    async def test_expanding_subcategory_refetches_branch(self, store, fake_api):
        await store.load_tree()
        fake_api.reset_calls()

        assert await store.toggle_subcategory("s1") is True
        assert fake_api.count("list_sub_subcategories", "s1") == 1

        assert await store.toggle_subcategory("s1") is False
        assert fake_api.count("list_sub_subcategories", "s1") == 1

    @pytest.mark.asyncio
    async def test_toggle_category_never_fetches(self, store, fake_api):
        await store.load_tree()
        fake_api.reset_calls()

        assert store.toggle_category("c1") is True
        assert store.toggle_category("c1") is False
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_expansion_survives_full_refetch(self, store):
        """Test expanded nodes stay expanded after the tree is rebuilt."""
        await store.load_tree()
        store.toggle_category("c1")
        await store.toggle_subcategory("s1")

        snapshot = await store.invalidate_categories()

        assert "c1" in snapshot.expanded_categories
        assert "s1" in snapshot.expanded_subcategories

    @pytest.mark.asyncio
    async def test_set_expanded_is_idempotent(self, store, fake_api):
        await store.load_tree()
        fake_api.reset_calls()

        await store.set_subcategory_expanded("s2", True)
        await store.set_subcategory_expanded("s2", True)
        store.set_category_expanded("c1", True)
        store.set_category_expanded("c1", True)

        assert fake_api.count("list_sub_subcategories", "s2") == 1
        assert store.expansion.is_category_expanded("c1")

    @pytest.mark.asyncio
    async def test_lazy_mode_fetches_only_expanded(self, store, fake_api, cfg):
        """Test branches load on expansion when eager loading is off."""
        cfg["EAGER_LOAD_SUB_SUBCATEGORIES"] = False

        snapshot = await store.load_tree()
        assert fake_api.count("list_sub_subcategories") == 0
        assert not snapshot.is_branch_loaded("s1")

        await store.toggle_subcategory("s1")
        assert fake_api.count("list_sub_subcategories") == 1
        assert store.read().is_branch_loaded("s1")

        fake_api.reset_calls()
        await store.invalidate_categories()
        assert fake_api.count("list_sub_subcategories") == 1
        assert fake_api.count("list_sub_subcategories", "s1") == 1


# ============================================================================
# READ AND SUBSCRIBE TESTS
# ============================================================================

class TestReadAndSubscribe:
    """Tests for read() and subscribe()."""

    @pytest.mark.asyncio
    async def test_read_returns_copies(self, store):
        await store.load_tree()

        snapshot = store.read()
        snapshot.categories.clear()
        snapshot.sub_sub_by_parent["s1"].clear()

        again = store.read()
        assert len(again.categories) == 2
        assert len(again.sub_sub_by_parent["s1"]) == 2

    @pytest.mark.asyncio
    async def test_listeners_notified(self, store):
        snapshots = []
        unsubscribe = store.subscribe(snapshots.append)

        await store.load_tree()

        assert snapshots[0].loading is True
        assert snapshots[-1].loading is False
        count = len(snapshots)

        unsubscribe()
        store.toggle_category("c1")
        assert len(snapshots) == count

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged(self, store, caplog):
        def broken(snapshot):
            raise RuntimeError("boom")

        received = []
        store.subscribe(broken)
        store.subscribe(received.append)

        with caplog.at_level(logging.WARNING):
            await store.load_tree()

        assert received
        assert "Taxonomy listener raised: boom" in caplog.text

    def test_find_helpers_before_load(self, store):
        assert store.find_category("c1") is None
        assert store.find_subcategory("s1") is None
        assert store.find_sub_subcategory("ss1") is None

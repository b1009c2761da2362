"""
Taxonomy store for the Catalog Taxonomy Admin.

Owns the normalized category tree and the per-subcategory map of
sub-subcategory lists, both backed by the query cache. The tree is loaded in
several round trips:

1. fetch the category list (subcategories come embedded)
2. fan out one sub-subcategory fetch per subcategory, concurrently; each
   branch lands in the store as soon as it resolves, and a failed branch
   yields an empty list without affecting its siblings

All state changes happen on the event loop that runs the store's
coroutines. Readers get immutable-by-convention snapshots via read() or by
subscribing; they never mutate the store directly.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, FrozenSet, List, Optional

from . import catalog_api
from .errors import CatalogError, user_message
from .expansion import ExpansionState
from .normalizer import (
    Category,
    SubSubcategory,
    Subcategory,
    normalize_categories,
    normalize_sub_subcategories,
)
from .query_cache import QueryCache

CATEGORIES_KEY = ("categories",)
SUB_SUBCATEGORIES_PREFIX = ("sub-subcategories",)


def sub_subcategories_key(subcategory_id):
    return SUB_SUBCATEGORIES_PREFIX + (subcategory_id,)


@dataclass
class BranchResult:
    """Outcome of one sub-subcategory fetch in the population pass."""

    subcategory_id: str
    items: List[SubSubcategory] = field(default_factory=list)
    error: Optional[CatalogError] = None
    discarded: bool = False


@dataclass
class TaxonomySnapshot:
    """The combined read value handed to the presentation layer."""

    categories: List[Category]
    sub_sub_by_parent: Dict[str, List[SubSubcategory]]
    branch_errors: Dict[str, str]
    load_error: Optional[str]
    loading: bool
    expanded_categories: FrozenSet[str]
    expanded_subcategories: FrozenSet[str]

    def is_branch_loaded(self, subcategory_id) -> bool:
        return subcategory_id in self.sub_sub_by_parent


class TaxonomyStore:
    """
    Shared taxonomy state plus its fetch and invalidation protocol.

    Args:
        cfg: Configuration dictionary
        api: Catalog API module (or an object exposing the same functions)
        cache: Optional QueryCache
        expansion: Optional ExpansionState
    """

    def __init__(self, cfg, api=None, cache=None, expansion=None):
        self.cfg = cfg
        self.api = api if api is not None else catalog_api
        self.cache = cache if cache is not None else QueryCache()
        self.expansion = expansion if expansion is not None else ExpansionState()

        self._categories: List[Category] = []
        self._sub_sub_by_parent: Dict[str, List[SubSubcategory]] = {}
        self._branch_errors: Dict[str, str] = {}
        self._load_error: Optional[str] = None
        self._loading = False
        self._tree_generation = 0
        self._branch_generations: Dict[str, int] = {}
        self._listeners: List[Callable] = []

    @property
    def language(self):
        return self.cfg.get("LANGUAGE", "en") or "en"

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read(self) -> TaxonomySnapshot:
        """Return the current tree with each subcategory's children attached."""
        categories = []
        for category in self._categories:
            subcategories = [
                replace(sub, sub_subcategories=list(self._sub_sub_by_parent.get(sub.id, [])))
                for sub in category.subcategories
            ]
            categories.append(replace(category, subcategories=subcategories))

        expanded_categories, expanded_subcategories = self.expansion.snapshot()
        return TaxonomySnapshot(
            categories=categories,
            sub_sub_by_parent={k: list(v) for k, v in self._sub_sub_by_parent.items()},
            branch_errors=dict(self._branch_errors),
            load_error=self._load_error,
            loading=self._loading,
            expanded_categories=expanded_categories,
            expanded_subcategories=expanded_subcategories,
        )

    def subscribe(self, listener):
        """
        Register ``listener(snapshot)`` for every state change.

        Returns:
            A zero-argument function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        if not self._listeners:
            return
        snapshot = self.read()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logging.warning(f"Taxonomy listener raised: {e}", exc_info=True)

    def find_category(self, category_id) -> Optional[Category]:
        for category in self._categories:
            if category.id == category_id:
                return category
        return None

    def find_subcategory(self, subcategory_id) -> Optional[Subcategory]:
        for category in self._categories:
            for sub in category.subcategories:
                if sub.id == subcategory_id:
                    return sub
        return None

    def find_sub_subcategory(self, sub_subcategory_id) -> Optional[SubSubcategory]:
        for items in self._sub_sub_by_parent.values():
            for item in items:
                if item.id == sub_subcategory_id:
                    return item
        return None

    # ------------------------------------------------------------------
    # Fetch path
    # ------------------------------------------------------------------

    async def call_api(self, fn, *args):
        """Run a blocking Catalog API function off the event loop."""
        return await asyncio.to_thread(fn, *args)

    async def load_tree(self) -> TaxonomySnapshot:
        """
        Fetch the category list and populate sub-subcategory branches.

        A failure of the category fetch is recorded on the snapshot and the
        previous tree stays in place. Branch failures are isolated per
        subcategory. Never raises CatalogError.
        """
        self._tree_generation += 1
        generation = self._tree_generation
        self._loading = True
        self._notify()

        try:
            raw = await self.cache.fetch(CATEGORIES_KEY, lambda: self.call_api(self.api.list_categories, self.cfg))
        except CatalogError as e:
            if generation == self._tree_generation:
                self._load_error = user_message(e)
                self._loading = False
                logging.error(f"Failed to load categories: {e}")
                self._notify()
            return self.read()

        if generation != self._tree_generation:
            logging.debug("Discarding category list from a superseded load")
            return self.read()

        # The tree and the branch map are rebuilt from scratch
        self._categories = normalize_categories(raw, self.language)
        self._sub_sub_by_parent = {}
        self._branch_errors = {}
        self._load_error = None
        logging.info(f"Loaded {len(self._categories)} categories")
        self._notify()

        eager = self.cfg.get("EAGER_LOAD_SUB_SUBCATEGORIES", True)
        targets = [
            (category.id, sub.id)
            for category in self._categories
            for sub in category.subcategories
            if eager or self.expansion.is_subcategory_expanded(sub.id)
        ]
        results = await asyncio.gather(*(self._load_branch(cid, sid) for cid, sid in targets))

        failed = [r.subcategory_id for r in results if r.error is not None]
        if failed:
            logging.warning(f"Sub-subcategory fetch failed for {len(failed)} of {len(results)} subcategories: {failed}")

        if generation == self._tree_generation:
            self._loading = False
            self._notify()
        return self.read()

    async def _load_branch(self, category_id, subcategory_id) -> BranchResult:
        key = sub_subcategories_key(subcategory_id)
        token = self._branch_generations.get(subcategory_id, 0) + 1
        self._branch_generations[subcategory_id] = token
        try:
            raw = await self.cache.fetch(
                key, lambda: self.call_api(self.api.list_sub_subcategories, subcategory_id, self.cfg)
            )
        except CatalogError as e:
            if token != self._branch_generations.get(subcategory_id):
                logging.debug(f"Ignoring failed fetch for {subcategory_id}: a newer fetch has started")
                return BranchResult(subcategory_id, error=e, discarded=True)
            if self.find_subcategory(subcategory_id) is None:
                logging.debug(f"Ignoring failed fetch for removed subcategory {subcategory_id}")
                return BranchResult(subcategory_id, error=e, discarded=True)
            logging.warning(f"Failed to load sub-subcategories for {subcategory_id}: {e}")
            self._sub_sub_by_parent[subcategory_id] = []
            self._branch_errors[subcategory_id] = user_message(e)
            self._notify()
            return BranchResult(subcategory_id, error=e)

        # Stale-result guards: only the latest fetch for a subcategory may land
        if token != self._branch_generations.get(subcategory_id):
            logging.debug(f"Discarding sub-subcategories for {subcategory_id}: a newer fetch has started")
            return BranchResult(subcategory_id, discarded=True)
        if self.find_subcategory(subcategory_id) is None:
            logging.info(f"Discarding sub-subcategories for subcategory {subcategory_id}: no longer in the tree")
            return BranchResult(subcategory_id, discarded=True)

        items = normalize_sub_subcategories(raw, category_id, subcategory_id, self.language)
        self._sub_sub_by_parent[subcategory_id] = items
        self._branch_errors.pop(subcategory_id, None)
        self._notify()
        return BranchResult(subcategory_id, items=items)

    async def refetch_sub_subcategories(self, subcategory_id) -> BranchResult:
        """Invalidate and refetch one subcategory's sub-subcategories."""
        sub = self.find_subcategory(subcategory_id)
        self.cache.invalidate(sub_subcategories_key(subcategory_id))
        if sub is None:
            logging.info(f"Not refetching sub-subcategories: subcategory {subcategory_id} is not in the tree")
            return BranchResult(subcategory_id, discarded=True)
        return await self._load_branch(sub.category_id, subcategory_id)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate_categories(self, include_branches=True) -> TaxonomySnapshot:
        """
        Invalidate the category collection and reload the tree.

        Args:
            include_branches: Also invalidate every cached sub-subcategory
                list, so the population pass refetches all of them
        """
        self.cache.invalidate(CATEGORIES_KEY)
        if include_branches:
            self.cache.invalidate_prefix(SUB_SUBCATEGORIES_PREFIX)
        return await self.load_tree()

    async def invalidate_sub_subcategories(self, subcategory_id) -> BranchResult:
        """
        Refetch one branch, then the whole category collection as a safety net.

        Other branches are served from the cache during the tree reload.
        """
        result = await self.refetch_sub_subcategories(subcategory_id)
        if self.cfg.get("INVALIDATE_TREE_ON_SUB_SUBCATEGORY_CHANGE", True):
            await self.invalidate_categories(include_branches=False)
        return result

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def toggle_category(self, category_id) -> bool:
        expanded = self.expansion.toggle_category(category_id)
        self._notify()
        return expanded

    async def toggle_subcategory(self, subcategory_id) -> bool:
        """Flip a subcategory; expanding it refetches its sub-subcategories."""
        expanded = self.expansion.toggle_subcategory(subcategory_id)
        self._notify()
        if expanded:
            await self.refetch_sub_subcategories(subcategory_id)
        return expanded

    def set_category_expanded(self, category_id, expanded: bool) -> bool:
        if self.expansion.is_category_expanded(category_id) != expanded:
            self.toggle_category(category_id)
        return expanded

    async def set_subcategory_expanded(self, subcategory_id, expanded: bool) -> bool:
        if self.expansion.is_subcategory_expanded(subcategory_id) != expanded:
            await self.toggle_subcategory(subcategory_id)
        return expanded

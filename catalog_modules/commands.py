"""
Mutation commands for the three taxonomy levels.

Each command validates its required ids, makes exactly one API call and, on
success, applies the invalidation rule for its level:

- category and subcategory changes reload the whole tree
- sub-subcategory changes refetch the affected branch, then reload the
  category collection as a safety net

API and transport errors are re-raised untouched; nothing is retried.
"""

import logging

from .errors import CatalogError, PreconditionError
from .normalizer import SUBCATEGORY_REF_KEYS, extract_ref
from .utils import slugify


def _require(value, message):
    if value is None or not str(value).strip():
        raise PreconditionError(message)
    return str(value).strip()


def _fields(name, description, is_active):
    return {
        "name": name,
        "description": description or "",
        "isActive": bool(is_active),
    }


class TaxonomyCommands:
    """The twelve create/update/delete/toggle-status operations."""

    def __init__(self, store):
        self.store = store

    @property
    def api(self):
        return self.store.api

    @property
    def cfg(self):
        return self.store.cfg

    async def _send(self, description, fn, *args):
        logging.info(f"{description}...")
        try:
            result = await self.store.call_api(fn, *args, self.cfg)
        except CatalogError as e:
            logging.error(f"{description} failed: {e}")
            raise
        logging.info(f"✅ {description} succeeded")
        return result

    async def _after_tree_change(self):
        await self.store.invalidate_categories()

    async def _after_branch_change(self, subcategory_id):
        if subcategory_id:
            await self.store.invalidate_sub_subcategories(subcategory_id)
        else:
            logging.warning("Owning subcategory unknown; reloading the whole tree instead")
            await self.store.invalidate_categories()

    # ============================================================================
    # CATEGORIES
    # ============================================================================

    async def create_category(self, name, description="", is_active=True):
        payload = _fields(name, description, is_active)
        record = await self._send(f"Creating category {name!r}", self.api.create_category, payload)
        await self._after_tree_change()
        return record

    async def update_category(self, category_id, name, description="", is_active=True):
        category_id = _require(category_id, "Select a category to update.")
        payload = _fields(name, description, is_active)
        record = await self._send(f"Updating category {category_id}", self.api.update_category, category_id, payload)
        await self._after_tree_change()
        return record

    async def delete_category(self, category_id):
        category_id = _require(category_id, "Select a category to delete.")
        record = await self._send(f"Deleting category {category_id}", self.api.delete_category, category_id)
        await self._after_tree_change()
        return record

    async def toggle_category_status(self, category_id):
        category_id = _require(category_id, "Select a category first.")
        record = await self._send(
            f"Toggling status of category {category_id}", self.api.toggle_category_status, category_id
        )
        await self._after_tree_change()
        return record

    # ============================================================================
    # SUBCATEGORIES
    # ============================================================================

    async def create_subcategory(self, category_id, name, description="", is_active=True):
        category_id = _require(category_id, "Please select a parent category for the subcategory.")
        payload = _fields(name, description, is_active)
        payload["categoryId"] = category_id
        record = await self._send(f"Creating subcategory {name!r}", self.api.create_subcategory, payload)
        await self._after_tree_change()
        return record

    async def update_subcategory(self, subcategory_id, name, description="", is_active=True):
        subcategory_id = _require(subcategory_id, "Select a subcategory to update.")
        payload = _fields(name, description, is_active)
        record = await self._send(
            f"Updating subcategory {subcategory_id}", self.api.update_subcategory, subcategory_id, payload
        )
        await self._after_tree_change()
        return record

    async def delete_subcategory(self, subcategory_id):
        subcategory_id = _require(subcategory_id, "Select a subcategory to delete.")
        record = await self._send(f"Deleting subcategory {subcategory_id}", self.api.delete_subcategory, subcategory_id)
        await self._after_tree_change()
        return record

    async def toggle_subcategory_status(self, subcategory_id):
        subcategory_id = _require(subcategory_id, "Select a subcategory first.")
        record = await self._send(
            f"Toggling status of subcategory {subcategory_id}", self.api.toggle_subcategory_status, subcategory_id
        )
        await self._after_tree_change()
        return record

    # ============================================================================
    # SUB-SUBCATEGORIES
    # ============================================================================

    def _owning_subcategory(self, sub_subcategory_id, explicit=None, record=None):
        """Resolve the owning subcategory id: argument, then store, then server record."""
        if explicit:
            return explicit
        known = self.store.find_sub_subcategory(sub_subcategory_id)
        if known is not None:
            return known.subcategory_id
        if isinstance(record, dict):
            return extract_ref(record, SUBCATEGORY_REF_KEYS)
        return None

    async def create_sub_subcategory(self, category_id, subcategory_id, name, description="", is_active=True):
        category_id = _require(category_id, "Please select a parent category for the sub-subcategory.")
        subcategory_id = _require(subcategory_id, "Please select a parent subcategory for the sub-subcategory.")
        payload = _fields(name, description, is_active)
        payload.update({
            "slug": slugify(name),
            "categoryId": category_id,
            "subcategoryId": subcategory_id,
        })
        record = await self._send(f"Creating sub-subcategory {name!r}", self.api.create_sub_subcategory, payload)
        await self._after_branch_change(subcategory_id)
        return record

    async def update_sub_subcategory(self, sub_subcategory_id, name, description="", is_active=True,
                                     subcategory_id=None):
        sub_subcategory_id = _require(sub_subcategory_id, "Select a sub-subcategory to update.")
        payload = _fields(name, description, is_active)
        payload["slug"] = slugify(name)
        parent = self._owning_subcategory(sub_subcategory_id, subcategory_id)
        record = await self._send(
            f"Updating sub-subcategory {sub_subcategory_id}",
            self.api.update_sub_subcategory, sub_subcategory_id, payload
        )
        await self._after_branch_change(parent or self._owning_subcategory(sub_subcategory_id, record=record))
        return record

    async def delete_sub_subcategory(self, sub_subcategory_id, subcategory_id=None):
        sub_subcategory_id = _require(sub_subcategory_id, "Select a sub-subcategory to delete.")
        parent = self._owning_subcategory(sub_subcategory_id, subcategory_id)
        record = await self._send(
            f"Deleting sub-subcategory {sub_subcategory_id}", self.api.delete_sub_subcategory, sub_subcategory_id
        )
        await self._after_branch_change(parent)
        return record

    async def toggle_sub_subcategory_status(self, sub_subcategory_id, subcategory_id=None):
        sub_subcategory_id = _require(sub_subcategory_id, "Select a sub-subcategory first.")
        parent = self._owning_subcategory(sub_subcategory_id, subcategory_id)
        record = await self._send(
            f"Toggling status of sub-subcategory {sub_subcategory_id}",
            self.api.toggle_sub_subcategory_status, sub_subcategory_id
        )
        await self._after_branch_change(parent or self._owning_subcategory(sub_subcategory_id, record=record))
        return record

"""
Tree normalizer for the Catalog Taxonomy Admin.

Converts the inconsistently-shaped records returned by the catalog API into
canonical Category / Subcategory / SubSubcategory nodes. All tolerance for
server quirks lives here:

- identity may arrive as "_id" or "id"; records with neither are dropped
- "isActive" may be missing or not a boolean; it defaults to True (or follows
  an "Active"/"Inactive" status string when one is present)
- names and descriptions may be per-language dicts
- parent references may be plain ids or embedded objects

Malformed records are skipped with a logged warning, never raised.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

SUBCATEGORY_KEYS = ("subcategories", "subCategories")
SUB_SUBCATEGORY_KEYS = ("subSubcategories", "subsubcategories", "subSubCategories")
CATEGORY_REF_KEYS = ("categoryId", "category")
SUBCATEGORY_REF_KEYS = ("subcategoryId", "subCategoryId", "subcategory", "subCategory")


@dataclass
class SubSubcategory:
    """Leaf node, attributed to exactly one (category, subcategory) pair."""

    id: str
    name: str
    description: str
    is_active: bool
    category_id: Optional[str]
    subcategory_id: str
    slug: str = ""

    def to_record(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
            "categoryId": self.category_id,
            "subcategoryId": self.subcategory_id,
            "slug": self.slug,
        }


@dataclass
class Subcategory:
    id: str
    name: str
    description: str
    is_active: bool
    category_id: str
    sub_subcategories: List[SubSubcategory] = field(default_factory=list)

    def to_record(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
            "categoryId": self.category_id,
            "subSubcategories": [s.to_record() for s in self.sub_subcategories],
        }


@dataclass
class Category:
    id: str
    name: str
    description: str
    is_active: bool
    subcategories: List[Subcategory] = field(default_factory=list)

    def to_record(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
            "subcategories": [s.to_record() for s in self.subcategories],
        }


# ============================================================================
# FIELD HELPERS
# ============================================================================

def extract_id(record) -> Optional[str]:
    """Return the record's identity from "_id" or "id", or None."""
    if not isinstance(record, dict):
        return None
    for key in ("_id", "id"):
        value = record.get(key)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def extract_ref(record, keys) -> Optional[str]:
    """Return a parent id declared under any of ``keys`` (plain id or embedded object)."""
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, dict):
            ref = extract_id(value)
        elif isinstance(value, (str, int)) and not isinstance(value, bool):
            ref = str(value).strip() or None
        else:
            ref = None
        if ref:
            return ref
    return None


def extract_text(value, language: str = "en") -> str:
    """Flatten a plain or per-language text value to a string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in (language, "en"):
            text = value.get(key)
            if isinstance(text, str) and text.strip():
                return text
        for text in value.values():
            if isinstance(text, str) and text.strip():
                return text
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def extract_is_active(record) -> bool:
    value = record.get("isActive")
    if isinstance(value, bool):
        return value
    status = record.get("status")
    if isinstance(status, str) and status.strip().lower() in ("active", "inactive"):
        return status.strip().lower() == "active"
    return True


def _children(record, keys) -> list:
    for key in keys:
        value = record.get(key)
        if isinstance(value, list):
            return value
    return []


def _as_record(raw):
    if hasattr(raw, "to_record"):
        return raw.to_record()
    return raw


# ============================================================================
# NORMALIZATION
# ============================================================================

def normalize_sub_subcategory(raw, category_id, subcategory_id, language="en") -> Optional[SubSubcategory]:
    """
    Normalize one sub-subcategory fetched for a (category, subcategory) slot.

    The parent ids are stamped from the fetch context. A record whose payload
    declares a different parent is rejected.

    Returns:
        SubSubcategory, or None when the record is malformed or out of scope
    """
    raw = _as_record(raw)
    if not isinstance(raw, dict):
        logging.warning(f"Skipping malformed sub-subcategory record under {subcategory_id}: {raw!r}")
        return None

    node_id = extract_id(raw)
    if not node_id:
        logging.warning(f"Skipping sub-subcategory without an id under {subcategory_id}")
        return None

    declared_sub = extract_ref(raw, SUBCATEGORY_REF_KEYS)
    if declared_sub and declared_sub != subcategory_id:
        logging.debug(f"Dropping sub-subcategory {node_id}: belongs to {declared_sub}, fetched for {subcategory_id}")
        return None

    declared_cat = extract_ref(raw, CATEGORY_REF_KEYS)
    if declared_cat and category_id and declared_cat != category_id:
        logging.debug(f"Dropping sub-subcategory {node_id}: belongs to category {declared_cat}, fetched for {category_id}")
        return None

    return SubSubcategory(
        id=node_id,
        name=extract_text(raw.get("name"), language),
        description=extract_text(raw.get("description"), language),
        is_active=extract_is_active(raw),
        category_id=category_id or declared_cat,
        subcategory_id=subcategory_id,
        slug=extract_text(raw.get("slug"), language),
    )


def normalize_sub_subcategories(raw_list, category_id, subcategory_id, language="en") -> List[SubSubcategory]:
    """Normalize a sub-subcategory list; a non-list response yields []."""
    if not isinstance(raw_list, list):
        if raw_list is not None:
            logging.warning(f"Expected a list of sub-subcategories for {subcategory_id}, got {type(raw_list).__name__}")
        return []

    nodes = []
    for raw in raw_list:
        node = normalize_sub_subcategory(raw, category_id, subcategory_id, language)
        if node is not None:
            nodes.append(node)
    return nodes


def normalize_subcategory(raw, category_id, language="en") -> Optional[Subcategory]:
    raw = _as_record(raw)
    if not isinstance(raw, dict):
        logging.warning(f"Skipping malformed subcategory record under {category_id}: {raw!r}")
        return None

    node_id = extract_id(raw)
    if not node_id:
        logging.warning(f"Skipping subcategory without an id under {category_id}")
        return None

    return Subcategory(
        id=node_id,
        name=extract_text(raw.get("name"), language),
        description=extract_text(raw.get("description"), language),
        is_active=extract_is_active(raw),
        category_id=category_id,
        sub_subcategories=normalize_sub_subcategories(
            _children(raw, SUB_SUBCATEGORY_KEYS), category_id, node_id, language
        ),
    )


def normalize_category(raw, language="en") -> Optional[Category]:
    raw = _as_record(raw)
    if not isinstance(raw, dict):
        logging.warning(f"Skipping malformed category record: {raw!r}")
        return None

    node_id = extract_id(raw)
    if not node_id:
        logging.warning(f"Skipping category without an id: {extract_text(raw.get('name'), language)!r}")
        return None

    subcategories = []
    for child in _children(raw, SUBCATEGORY_KEYS):
        sub = normalize_subcategory(child, node_id, language)
        if sub is not None:
            subcategories.append(sub)

    return Category(
        id=node_id,
        name=extract_text(raw.get("name"), language),
        description=extract_text(raw.get("description"), language),
        is_active=extract_is_active(raw),
        subcategories=subcategories,
    )


def normalize_categories(raw_list, language="en") -> List[Category]:
    """
    Normalize the category list returned by the catalog API.

    Args:
        raw_list: Raw category records (or already-normalized nodes)
        language: Preferred language for localized text

    Returns:
        List of Category nodes in server order; [] when the response is not a list
    """
    if not isinstance(raw_list, list):
        logging.warning(f"Expected a list of categories, got {type(raw_list).__name__}; treating as empty")
        return []

    categories = []
    for raw in raw_list:
        category = normalize_category(raw, language)
        if category is not None:
            categories.append(category)

    dropped = len(raw_list) - len(categories)
    if dropped:
        logging.warning(f"Dropped {dropped} malformed category record(s)")
    return categories

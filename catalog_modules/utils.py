"""
Utility functions for the Catalog Taxonomy Admin.
"""

import re
import unicodedata

NONE_FOUND = "(no sub-subcategories found)"


def slugify(text):
    """
    Convert a name to a URL slug.

    Examples:
        'Android Phones' -> 'android-phones'
        'Café & Bar' -> 'cafe-bar'
    """
    if not text or not isinstance(text, str):
        return ""
    nfkd = unicodedata.normalize("NFKD", text)
    ascii_text = nfkd.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", ascii_text).strip("-")


def filter_categories(categories, term):
    """
    Filter categories by a case-insensitive search term.

    Matches against category name and description. An empty term keeps
    everything.

    Args:
        categories: List of Category nodes
        term: Search text

    Returns:
        Matching categories in their original order
    """
    term = (term or "").strip().lower()
    if not term:
        return list(categories)
    return [
        c for c in categories
        if term in (c.name or "").lower() or term in (c.description or "").lower()
    ]


def status_label(is_active):
    return "Active" if is_active else "Inactive"


def format_tree(snapshot, search="", expand_all=False):
    """
    Render a taxonomy snapshot as indented text lines.

    Subcategories are listed under expanded categories and sub-subcategories
    under expanded subcategories (or everything with ``expand_all``).

    Args:
        snapshot: TaxonomySnapshot
        search: Optional category search term
        expand_all: Ignore expansion state and show every level

    Returns:
        List of lines
    """
    lines = []
    for category in filter_categories(snapshot.categories, search):
        lines.append(f"{category.name} [{status_label(category.is_active)}] ({category.id})")
        if not (expand_all or category.id in snapshot.expanded_categories):
            continue

        for sub in category.subcategories:
            lines.append(f"  {sub.name} [{status_label(sub.is_active)}] ({sub.id})")
            if not (expand_all or sub.id in snapshot.expanded_subcategories):
                continue

            if not snapshot.is_branch_loaded(sub.id):
                lines.append("    (loading...)")
            elif not sub.sub_subcategories:
                lines.append(f"    {NONE_FOUND}")
            else:
                for item in sub.sub_subcategories:
                    lines.append(f"    {item.name} [{status_label(item.is_active)}] ({item.id})")
    return lines

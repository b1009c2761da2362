"""
Expand/collapse state for the category tree.

Two independent sets of expanded ids, one per level. State is keyed by node
id, never by position, so it survives full-tree refetches. Every node starts
collapsed and the state lives only for the session.
"""


class ExpansionState:
    def __init__(self):
        self.expanded_categories = set()
        self.expanded_subcategories = set()

    def is_category_expanded(self, category_id) -> bool:
        return category_id in self.expanded_categories

    def is_subcategory_expanded(self, subcategory_id) -> bool:
        return subcategory_id in self.expanded_subcategories

    def toggle_category(self, category_id) -> bool:
        """Flip a category. Returns True if it is now expanded."""
        return _flip(self.expanded_categories, category_id)

    def toggle_subcategory(self, subcategory_id) -> bool:
        """Flip a subcategory. Returns True if it is now expanded."""
        return _flip(self.expanded_subcategories, subcategory_id)

    def snapshot(self):
        return frozenset(self.expanded_categories), frozenset(self.expanded_subcategories)


def _flip(members, node_id) -> bool:
    if node_id in members:
        members.discard(node_id)
        return False
    members.add(node_id)
    return True

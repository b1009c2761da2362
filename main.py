#!/usr/bin/env python3
"""
Catalog Taxonomy Admin - CLI Entry Point

Command-line interface for browsing and editing the category tree
(category -> subcategory -> sub-subcategory) over the catalog REST API.
For the GUI, use catalog_admin.py instead.
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path for imports
sys.path.insert(0, os.path.dirname(__file__))

from catalog_modules.commands import TaxonomyCommands
from catalog_modules.config import load_config, SCRIPT_VERSION
from catalog_modules.errors import CatalogError, user_message
from catalog_modules.taxonomy_store import TaxonomyStore
from catalog_modules.utils import format_tree

LEVELS = ["category", "subcategory", "sub-subcategory"]


def setup_logging(log_file: str, verbose: bool = False) -> None:
    """Configure logging for CLI mode."""
    log_level = logging.DEBUG if verbose else logging.WARNING

    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Catalog Taxonomy Admin - manage categories, subcategories and sub-subcategories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s tree --all
  %(prog)s tree --search phones
  %(prog)s create category --name Phones
  %(prog)s create subcategory --category-id c1 --name Android
  %(prog)s create sub-subcategory --category-id c1 --subcategory-id s1 --name Tablets
  %(prog)s update subcategory s1 --name "Android Phones"
  %(prog)s toggle sub-subcategory ss1
  %(prog)s delete category c1
        """
    )
    parser.add_argument("--log", "-l", help="Path to log file (optional)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {SCRIPT_VERSION}")

    sub = parser.add_subparsers(dest="command", required=True)

    tree = sub.add_parser("tree", help="Print the category tree")
    tree.add_argument("--search", "-s", default="", help="Filter categories by name or description")
    tree.add_argument("--all", "-a", action="store_true", help="Expand every level")
    tree.add_argument("--expand", "-e", action="append", default=[], metavar="ID",
                      help="Expand a category or subcategory id (repeatable)")

    create = sub.add_parser("create", help="Create a node")
    create.add_argument("level", choices=LEVELS)
    create.add_argument("--name", required=True)
    create.add_argument("--description", default="")
    create.add_argument("--inactive", action="store_true", help="Create the node as inactive")
    create.add_argument("--category-id", help="Parent category (subcategory and sub-subcategory)")
    create.add_argument("--subcategory-id", help="Parent subcategory (sub-subcategory)")

    update = sub.add_parser("update", help="Update a node; omitted fields keep their current value")
    update.add_argument("level", choices=LEVELS)
    update.add_argument("id")
    update.add_argument("--name")
    update.add_argument("--description")
    state = update.add_mutually_exclusive_group()
    state.add_argument("--active", dest="is_active", action="store_true", default=None)
    state.add_argument("--inactive", dest="is_active", action="store_false")
    update.set_defaults(is_active=None)
    update.add_argument("--subcategory-id", help="Owning subcategory (sub-subcategory)")

    for name, help_text in (("delete", "Delete a node"), ("toggle", "Toggle a node's active status")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("level", choices=LEVELS)
        p.add_argument("id")
        p.add_argument("--subcategory-id", help="Owning subcategory (sub-subcategory)")

    return parser


def _current_node(store, level, node_id):
    if level == "category":
        return store.find_category(node_id)
    if level == "subcategory":
        return store.find_subcategory(node_id)
    return store.find_sub_subcategory(node_id)


async def run(args, cfg) -> int:
    """Execute one CLI command against a fresh store."""
    store = TaxonomyStore(cfg)
    commands = TaxonomyCommands(store)

    if args.command == "tree":
        for node_id in args.expand:
            if not store.expansion.is_category_expanded(node_id):
                store.expansion.toggle_category(node_id)
            if not store.expansion.is_subcategory_expanded(node_id):
                store.expansion.toggle_subcategory(node_id)
        snapshot = await store.load_tree()
        if snapshot.load_error:
            print(f"Error: {snapshot.load_error}", file=sys.stderr)
            return 1
        for line in format_tree(snapshot, search=args.search, expand_all=args.all):
            print(line)
        for sub_id, message in snapshot.branch_errors.items():
            print(f"Warning: sub-subcategories of {sub_id} could not be loaded: {message}", file=sys.stderr)
        return 0

    level = args.level

    if args.command == "create":
        is_active = not args.inactive
        if level == "category":
            record = await commands.create_category(args.name, args.description, is_active)
        elif level == "subcategory":
            record = await commands.create_subcategory(args.category_id, args.name, args.description, is_active)
        else:
            record = await commands.create_sub_subcategory(
                args.category_id, args.subcategory_id, args.name, args.description, is_active
            )
        print(f"Created {level}: {record}")
        return 0

    if args.command == "update":
        await store.load_tree()
        current = _current_node(store, level, args.id)
        name = args.name if args.name is not None else getattr(current, "name", None)
        if not name:
            print(f"Error: --name is required ({level} {args.id} is not in the loaded tree)", file=sys.stderr)
            return 1
        description = args.description if args.description is not None else getattr(current, "description", "")
        is_active = args.is_active if args.is_active is not None else getattr(current, "is_active", True)
        if level == "category":
            record = await commands.update_category(args.id, name, description, is_active)
        elif level == "subcategory":
            record = await commands.update_subcategory(args.id, name, description, is_active)
        else:
            record = await commands.update_sub_subcategory(
                args.id, name, description, is_active, subcategory_id=args.subcategory_id
            )
        print(f"Updated {level}: {record}")
        return 0

    if args.command == "delete":
        if level == "category":
            await commands.delete_category(args.id)
        elif level == "subcategory":
            await commands.delete_subcategory(args.id)
        else:
            await commands.delete_sub_subcategory(args.id, subcategory_id=args.subcategory_id)
        print(f"Deleted {level} {args.id}")
        return 0

    if level == "category":
        record = await commands.toggle_category_status(args.id)
    elif level == "subcategory":
        record = await commands.toggle_subcategory_status(args.id)
    else:
        record = await commands.toggle_sub_subcategory_status(args.id, subcategory_id=args.subcategory_id)
    print(f"Toggled {level} status: {record}")
    return 0


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log, args.verbose)

    cfg = load_config()

    try:
        return asyncio.run(run(args, cfg))
    except CatalogError as e:
        logging.debug(f"{args.command} failed: {e}")
        print(f"Error: {user_message(e)}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())

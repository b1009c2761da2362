"""
GUI implementation for the Catalog Taxonomy Admin.

This module contains the tkinter/ttkbootstrap GUI code. The taxonomy store
lives on an asyncio loop running in a daemon thread; the Tk main thread only
renders snapshots and submits coroutines. Everything crossing between the two
threads goes through queues drained by app.after().
"""

import asyncio
import logging
import queue
import threading
from tkinter import messagebox
import ttkbootstrap as tb
from ttkbootstrap.tooltip import ToolTip

from .commands import TaxonomyCommands
from .config import load_config, update_config, setup_logging, log_and_status, SCRIPT_VERSION
from .errors import CatalogError, user_message
from .taxonomy_store import TaxonomyStore
from .utils import NONE_FOUND, filter_categories, status_label


LANGUAGES = [
    ("English", "en"),
    ("Arabic", "ar")
]


class AsyncRunner:
    """Runs an asyncio event loop on a daemon thread."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, name="taxonomy-loop", daemon=True)
        self.thread.start()

    def submit(self, coro, on_done=None):
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        if on_done is not None:
            future.add_done_callback(on_done)
        return future

    def call(self, fn, *args):
        """Schedule a plain function on the loop thread."""
        self.loop.call_soon_threadsafe(fn, *args)

    def stop(self):
        """Stop the loop after already scheduled callbacks have run."""
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)


def open_system_settings(cfg, runner, parent, on_saved=None):
    """Open the system settings dialog."""
    settings_window = tb.Toplevel(parent)
    settings_window.title("System Settings")
    settings_window.geometry("650x420")
    settings_window.transient(parent)
    settings_window.grab_set()

    main_frame = tb.Frame(settings_window, padding=20)
    main_frame.pack(fill="both", expand=True)

    tb.Label(
        main_frame,
        text="Catalog API Configuration",
        font=("Arial", 11, "bold")
    ).grid(row=0, column=0, columnspan=2, sticky="w", pady=(0, 5))

    tb.Separator(main_frame, orient="horizontal").grid(
        row=1, column=0, columnspan=2, sticky="ew", pady=(0, 10)
    )

    tb.Label(main_frame, text="API URL:").grid(row=2, column=0, sticky="w", padx=5, pady=5)
    api_url_var = tb.StringVar(value=cfg.get("CATALOG_API_URL", ""))
    api_url_entry = tb.Entry(main_frame, textvariable=api_url_var, width=50)
    api_url_entry.grid(row=2, column=1, sticky="ew", padx=5, pady=5)
    ToolTip(api_url_entry, text="Root of the catalog REST API (e.g., http://localhost:3000/api)")

    tb.Label(main_frame, text="Access Token:").grid(row=3, column=0, sticky="w", padx=5, pady=5)
    token_var = tb.StringVar(value=cfg.get("CATALOG_API_TOKEN", ""))
    token_entry = tb.Entry(main_frame, textvariable=token_var, width=50, show="*")
    token_entry.grid(row=3, column=1, sticky="ew", padx=5, pady=5)
    ToolTip(token_entry, text="Bearer token sent with every catalog request")

    tb.Label(main_frame, text="Language:").grid(row=4, column=0, sticky="w", padx=5, pady=5)
    current_language = cfg.get("LANGUAGE", "en")
    language_var = tb.StringVar(
        value=next((display for display, code in LANGUAGES if code == current_language), "English")
    )
    tb.Combobox(
        main_frame,
        textvariable=language_var,
        values=[display for display, _ in LANGUAGES],
        state="readonly",
        width=47
    ).grid(row=4, column=1, sticky="ew", padx=5, pady=5)

    eager_var = tb.BooleanVar(value=cfg.get("EAGER_LOAD_SUB_SUBCATEGORIES", True))
    eager_check = tb.Checkbutton(
        main_frame,
        text="Load all sub-subcategories up front",
        variable=eager_var,
        bootstyle="info-round-toggle"
    )
    eager_check.grid(row=5, column=1, sticky="w", padx=5, pady=5)
    ToolTip(
        eager_check,
        text="On: every subcategory's children are fetched when the tree loads.\n"
             "Off: children are fetched only when a subcategory is expanded."
    )

    main_frame.columnconfigure(1, weight=1)

    button_frame = tb.Frame(settings_window)
    button_frame.pack(side="bottom", fill="x", padx=20, pady=20)

    def save_settings():
        """Save settings and close dialog."""
        updates = {
            "CATALOG_API_URL": api_url_var.get().strip(),
            "CATALOG_API_TOKEN": token_var.get().strip(),
            "LANGUAGE": next((code for display, code in LANGUAGES if display == language_var.get()), "en"),
            "EAGER_LOAD_SUB_SUBCATEGORIES": bool(eager_var.get()),
        }

        # cfg is read by the store's coroutines, so it is only written on the loop
        runner.call(update_config, cfg, updates)
        messagebox.showinfo("Settings Saved", "System settings have been saved successfully.")
        settings_window.destroy()
        if on_saved is not None:
            on_saved()

    tb.Button(button_frame, text="Save", command=save_settings, bootstyle="success", width=15).pack(
        side="right", padx=5
    )
    tb.Button(button_frame, text="Cancel", command=settings_window.destroy, bootstyle="secondary", width=15).pack(
        side="right"
    )


def open_node_form(parent, title, on_submit, name="", description="", is_active=True):
    """Modal form for creating or editing a taxonomy node."""
    form = tb.Toplevel(parent)
    form.title(title)
    form.geometry("520x260")
    form.transient(parent)
    form.grab_set()

    frame = tb.Frame(form, padding=20)
    frame.pack(fill="both", expand=True)
    frame.columnconfigure(1, weight=1)

    tb.Label(frame, text="Name:").grid(row=0, column=0, sticky="w", padx=5, pady=5)
    name_var = tb.StringVar(value=name)
    name_entry = tb.Entry(frame, textvariable=name_var, width=45)
    name_entry.grid(row=0, column=1, sticky="ew", padx=5, pady=5)
    name_entry.focus_set()

    tb.Label(frame, text="Description:").grid(row=1, column=0, sticky="w", padx=5, pady=5)
    description_var = tb.StringVar(value=description)
    tb.Entry(frame, textvariable=description_var, width=45).grid(row=1, column=1, sticky="ew", padx=5, pady=5)

    active_var = tb.BooleanVar(value=is_active)
    tb.Checkbutton(frame, text="Active", variable=active_var, bootstyle="success-round-toggle").grid(
        row=2, column=1, sticky="w", padx=5, pady=5
    )

    def submit():
        if not name_var.get().strip():
            messagebox.showerror("Validation Error", "Name is required.", parent=form)
            return
        on_submit(name_var.get().strip(), description_var.get().strip(), bool(active_var.get()))
        form.destroy()

    button_frame = tb.Frame(form)
    button_frame.pack(side="bottom", fill="x", padx=20, pady=(0, 20))
    tb.Button(button_frame, text="Save", command=submit, bootstyle="success", width=15).pack(side="right", padx=5)
    tb.Button(button_frame, text="Cancel", command=form.destroy, bootstyle="secondary", width=15).pack(side="right")


def build_gui():
    """Build the main GUI application."""
    cfg = load_config()
    if cfg.get("LOG_FILE"):
        setup_logging(cfg["LOG_FILE"])
    else:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

    runner = AsyncRunner()
    store = TaxonomyStore(cfg)
    commands = TaxonomyCommands(store)

    status_queue = queue.Queue()
    snapshot_queue = queue.Queue()
    error_queue = queue.Queue()

    # Row id -> (level, node id, category id, subcategory id)
    rows = {}
    view = {"snapshot": None}

    def status(msg):
        """Thread-safe status update."""
        status_queue.put(msg)

    # Listener runs on the loop thread; hand snapshots to Tk through the queue
    runner.call(store.subscribe, snapshot_queue.put)

    app = tb.Window(themename="darkly")
    app.title("Catalog Taxonomy Admin")
    app.geometry(cfg.get("WINDOW_GEOMETRY", "1000x800"))

    menu_bar = tb.Menu(app)
    app.config(menu=menu_bar)
    settings_menu = tb.Menu(menu_bar, tearoff=0)
    menu_bar.add_cascade(label="Settings", menu=settings_menu)

    # Toolbar
    toolbar = tb.Frame(app)
    toolbar.pack(side="top", fill="x", padx=10, pady=(10, 5))

    tb.Label(toolbar, text="Search:").pack(side="left")
    search_var = tb.StringVar()
    search_entry = tb.Entry(toolbar, textvariable=search_var, width=30)
    search_entry.pack(side="left", padx=5)
    ToolTip(search_entry, text="Filter categories by name or description")

    action_frame = tb.Frame(app)
    action_frame.pack(side="top", fill="x", padx=10, pady=5)

    # Tree
    tree_frame = tb.Frame(app)
    tree_frame.pack(fill="both", expand=True, padx=10, pady=5)

    tree = tb.Treeview(tree_frame, columns=("description", "status"), selectmode="browse")
    tree.heading("#0", text="Name")
    tree.heading("description", text="Description")
    tree.heading("status", text="Status")
    tree.column("#0", width=320)
    tree.column("description", width=420)
    tree.column("status", width=100, anchor="center")
    scrollbar = tb.Scrollbar(tree_frame, orient="vertical", command=tree.yview)
    tree.configure(yscrollcommand=scrollbar.set)
    tree.pack(side="left", fill="both", expand=True)
    scrollbar.pack(side="right", fill="y")

    status_label_widget = tb.Label(app, text="Status Log:", anchor="w")
    status_label_widget.pack(anchor="w", padx=10, pady=(10, 0))
    status_log = tb.Text(app, height=8, state="disabled")
    status_log.pack(fill="x", padx=10, pady=(0, 10))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(snapshot):
        view["snapshot"] = snapshot
        selected = tree.selection()
        selected = selected[0] if selected else None

        tree.delete(*tree.get_children())
        rows.clear()

        for category in filter_categories(snapshot.categories, search_var.get()):
            cat_iid = f"cat:{category.id}"
            rows[cat_iid] = ("category", category.id, category.id, None)
            tree.insert(
                "", "end", iid=cat_iid, text=category.name,
                values=(category.description, status_label(category.is_active)),
                open=category.id in snapshot.expanded_categories
            )

            for sub in category.subcategories:
                sub_iid = f"sub:{sub.id}"
                rows[sub_iid] = ("subcategory", sub.id, category.id, sub.id)
                expanded = sub.id in snapshot.expanded_subcategories
                tree.insert(
                    cat_iid, "end", iid=sub_iid, text=sub.name,
                    values=(sub.description, status_label(sub.is_active)),
                    open=expanded
                )

                if not expanded:
                    # Placeholder so the expander is shown before children are fetched
                    tree.insert(sub_iid, "end", iid=f"ph:{sub.id}", text="…")
                elif not snapshot.is_branch_loaded(sub.id):
                    tree.insert(sub_iid, "end", iid=f"ph:{sub.id}", text="Loading…")
                elif not sub.sub_subcategories:
                    tree.insert(sub_iid, "end", iid=f"ph:{sub.id}", text=NONE_FOUND)
                else:
                    for item in sub.sub_subcategories:
                        item_iid = f"ss:{item.id}"
                        rows[item_iid] = ("sub-subcategory", item.id, category.id, sub.id)
                        tree.insert(
                            sub_iid, "end", iid=item_iid, text=item.name,
                            values=(item.description, status_label(item.is_active))
                        )

        if selected and tree.exists(selected):
            tree.selection_set(selected)
            tree.see(selected)

        if snapshot.load_error:
            status_label_widget.config(text=f"Status Log: ⚠️ {snapshot.load_error}")
        elif snapshot.loading:
            status_label_widget.config(text="Status Log: loading…")
        else:
            status_label_widget.config(text="Status Log:")

    search_var.trace_add("write", lambda *args: view["snapshot"] and render(view["snapshot"]))

    # ------------------------------------------------------------------
    # Store interaction
    # ------------------------------------------------------------------

    def run_command(description, coro):
        """Run a store/command coroutine and report its outcome."""
        log_and_status(status, f"{description}...")

        def on_done(future):
            try:
                result = future.result()
            except CatalogError as e:
                log_and_status(status, f"{description} failed: {e}", "error", f"❌ {description} failed: {user_message(e)}")
                error_queue.put((f"{description} failed", user_message(e)))
            except Exception as e:
                logging.exception(f"Unexpected error during {description}")
                error_queue.put((f"{description} failed", user_message(e)))
            else:
                load_error = getattr(result, "load_error", None)
                if load_error:
                    status(f"⚠️ {description}: {load_error}")
                else:
                    status(f"✅ {description} done")

        runner.submit(coro, on_done)

    def refresh():
        run_command("Refreshing categories", store.invalidate_categories())

    def on_tree_open(event):
        iid = tree.focus()
        row = rows.get(iid)
        if row is None:
            return
        level, node_id = row[0], row[1]
        if level == "category":
            runner.call(store.set_category_expanded, node_id, True)
        elif level == "subcategory":
            runner.submit(store.set_subcategory_expanded(node_id, True))

    def on_tree_close(event):
        iid = tree.focus()
        row = rows.get(iid)
        if row is None:
            return
        level, node_id = row[0], row[1]
        if level == "category":
            runner.call(store.set_category_expanded, node_id, False)
        elif level == "subcategory":
            runner.submit(store.set_subcategory_expanded(node_id, False))

    tree.bind("<<TreeviewOpen>>", on_tree_open)
    tree.bind("<<TreeviewClose>>", on_tree_close)

    def selected_row():
        selection = tree.selection()
        if not selection:
            return None
        return rows.get(selection[0])

    def find_node(row):
        snapshot = view["snapshot"]
        if snapshot is None or row is None:
            return None
        level, node_id, category_id, subcategory_id = row
        for category in snapshot.categories:
            if category.id != category_id:
                continue
            if level == "category":
                return category
            for sub in category.subcategories:
                if sub.id != subcategory_id:
                    continue
                if level == "subcategory":
                    return sub
                return next((i for i in sub.sub_subcategories if i.id == node_id), None)
        return None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def add_category():
        open_node_form(
            app, "Add Category",
            lambda name, desc, active: run_command(
                f"Creating category {name}", commands.create_category(name, desc, active)
            )
        )

    def add_subcategory():
        row = selected_row()
        category_id = row[2] if row else None
        open_node_form(
            app, "Add Subcategory",
            lambda name, desc, active: run_command(
                f"Creating subcategory {name}", commands.create_subcategory(category_id, name, desc, active)
            )
        )

    def add_sub_subcategory():
        row = selected_row()
        category_id = row[2] if row else None
        subcategory_id = row[3] if row else None
        open_node_form(
            app, "Add Sub-subcategory",
            lambda name, desc, active: run_command(
                f"Creating sub-subcategory {name}",
                commands.create_sub_subcategory(category_id, subcategory_id, name, desc, active)
            )
        )

    def edit_selected():
        row = selected_row()
        node = find_node(row)
        if node is None:
            messagebox.showwarning("Nothing Selected", "Select a category, subcategory or sub-subcategory to edit.")
            return
        level, node_id, _, subcategory_id = row

        def submit(name, desc, active):
            if level == "category":
                coro = commands.update_category(node_id, name, desc, active)
            elif level == "subcategory":
                coro = commands.update_subcategory(node_id, name, desc, active)
            else:
                coro = commands.update_sub_subcategory(node_id, name, desc, active, subcategory_id=subcategory_id)
            run_command(f"Updating {level} {name}", coro)

        open_node_form(app, f"Edit {level.capitalize()}", submit, node.name, node.description, node.is_active)

    def toggle_selected():
        row = selected_row()
        if row is None:
            messagebox.showwarning("Nothing Selected", "Select an item to change its status.")
            return
        level, node_id, _, subcategory_id = row
        if level == "category":
            coro = commands.toggle_category_status(node_id)
        elif level == "subcategory":
            coro = commands.toggle_subcategory_status(node_id)
        else:
            coro = commands.toggle_sub_subcategory_status(node_id, subcategory_id=subcategory_id)
        run_command(f"Toggling {level} status", coro)

    def delete_selected():
        row = selected_row()
        node = find_node(row)
        if node is None:
            messagebox.showwarning("Nothing Selected", "Select an item to delete.")
            return
        level, node_id, _, subcategory_id = row
        confirm = messagebox.askyesno(
            "Confirm Delete",
            f"Are you sure you want to delete this {level}?\n\n{node.name}\n\nThis action cannot be undone."
        )
        if not confirm:
            return
        if level == "category":
            coro = commands.delete_category(node_id)
        elif level == "subcategory":
            coro = commands.delete_subcategory(node_id)
        else:
            coro = commands.delete_sub_subcategory(node_id, subcategory_id=subcategory_id)
        run_command(f"Deleting {level} {node.name}", coro)

    for text, command, style in (
        ("➕ Category", add_category, "success"),
        ("➕ Subcategory", add_subcategory, "success-outline"),
        ("➕ Sub-subcategory", add_sub_subcategory, "success-outline"),
        ("Edit", edit_selected, "info"),
        ("Toggle Status", toggle_selected, "warning"),
        ("Delete", delete_selected, "danger-outline"),
        ("Refresh", refresh, "secondary"),
    ):
        tb.Button(action_frame, text=text, command=command, bootstyle=style).pack(side="left", padx=5)

    settings_menu.add_command(label="System Settings", command=lambda: open_system_settings(cfg, runner, app, refresh))
    tb.Button(
        toolbar,
        text="⚙️ Settings",
        command=lambda: open_system_settings(cfg, runner, app, refresh),
        bootstyle="secondary-outline"
    ).pack(side="right", padx=5)

    # ------------------------------------------------------------------
    # Queue processing (main thread)
    # ------------------------------------------------------------------

    def process_queues():
        """Drain status, snapshot and error queues. Runs in main thread."""
        messages = []
        while True:
            try:
                messages.append(status_queue.get_nowait())
            except queue.Empty:
                break
        if messages:
            status_log.config(state="normal")
            for msg in messages:
                status_log.insert("end", msg + "\n")
            status_log.see("end")
            status_log.config(state="disabled")

        latest = None
        while True:
            try:
                latest = snapshot_queue.get_nowait()
            except queue.Empty:
                break
        if latest is not None:
            try:
                render(latest)
            except Exception as e:
                logging.error(f"Failed to render taxonomy: {e}", exc_info=True)

        while True:
            try:
                title, message = error_queue.get_nowait()
            except queue.Empty:
                break
            messagebox.showerror(title, message)

        app.after(50, process_queues)

    def on_closing():
        """Handle window close event."""
        try:
            runner.call(update_config, cfg, {"WINDOW_GEOMETRY": app.geometry()})
        except Exception as e:
            logging.warning(f"Failed to save window geometry: {e}")
        runner.stop()
        app.quit()

    app.protocol("WM_DELETE_WINDOW", on_closing)
    app.after(50, process_queues)

    status("=" * 60)
    status(SCRIPT_VERSION)
    status("=" * 60)
    run_command("Loading categories", store.load_tree())

    app.mainloop()

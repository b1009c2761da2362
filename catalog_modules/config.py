"""
Configuration and logging management for the Catalog Taxonomy Admin.
"""

import os
import sys
import json
import logging

# Version
SCRIPT_VERSION = "1.2.0 - Catalog Taxonomy Admin (categories / subcategories / sub-subcategories)"

# File paths
APP_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_FILE = os.path.join(APP_DIR, "config.json")

DEFAULT_API_URL = "http://localhost:3000/api"
DEFAULT_TIMEOUT = 30


def default_config():
    """Return a fresh copy of the default configuration."""
    return {
        "_SYSTEM SETTINGS": "These are system settings specified in the Settings dialog.",
        "CATALOG_API_URL": DEFAULT_API_URL,
        "CATALOG_API_TOKEN": "",
        "REQUEST_TIMEOUT": DEFAULT_TIMEOUT,
        "LANGUAGE": "en",
        "_TAXONOMY SETTINGS": "How the category tree is fetched and refreshed.",
        "EAGER_LOAD_SUB_SUBCATEGORIES": True,
        "INVALIDATE_TREE_ON_SUB_SUBCATEGORY_CHANGE": True,
        "_USER SETTINGS": "These are user settings specified in the main UI.",
        "LOG_FILE": "",
        "WINDOW_GEOMETRY": "1000x800"
    }


def load_config():
    """Load configuration from config.json or create with defaults."""
    default = default_config()

    try:
        if not os.path.exists(CONFIG_FILE):
            with open(CONFIG_FILE, "w", encoding="utf-8") as f:
                json.dump(default, f, indent=4)
            return default
        else:
            with open(CONFIG_FILE, "r", encoding="utf-8") as f:
                loaded_config = json.load(f)

            # Ensure all new fields exist
            for key, value in default.items():
                if key not in loaded_config:
                    loaded_config[key] = value

            return loaded_config
    except json.JSONDecodeError as e:
        logging.error(f"Failed to parse config.json: {e}. Using defaults.")
        return default
    except IOError as e:
        logging.error(f"Failed to read/write config.json: {e}. Using defaults.")
        return default
    except Exception as e:
        logging.error(f"Unexpected error loading config: {e}. Using defaults.")
        return default


def save_config(config):
    """Save configuration to config.json."""
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=4)
    except IOError as e:
        logging.error(f"Failed to write config.json: {e}")
    except Exception as e:
        logging.error(f"Unexpected error saving config: {e}")


def update_config(config, updates):
    """Apply ``updates`` to the live config dict and persist it."""
    config.update(updates)
    save_config(config)
    logging.info(f"Updated settings: {', '.join(sorted(updates))}")


def get_timeout(cfg):
    """Request timeout in seconds, falling back to the default on bad values."""
    try:
        timeout = float(cfg.get("REQUEST_TIMEOUT", DEFAULT_TIMEOUT))
    except (TypeError, ValueError):
        logging.warning(f"Invalid REQUEST_TIMEOUT {cfg.get('REQUEST_TIMEOUT')!r}, using {DEFAULT_TIMEOUT}s")
        return DEFAULT_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_TIMEOUT


def setup_logging(log_path: str, level: int = logging.INFO):
    """
    Configure logging to file and console.

    Args:
        log_path: Path to log file
        level: Console logging level (typically INFO)
    """
    try:
        for h in logging.root.handlers[:]:
            logging.root.removeHandler(h)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(threadName)s | %(message)s")
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        )

        logging.root.setLevel(logging.DEBUG)
        logging.root.addHandler(file_handler)
        logging.root.addHandler(console_handler)

        install_global_exception_logging()
    except Exception as e:
        print(f"Failed to setup logging: {e}", file=sys.stderr)
        raise


def install_global_exception_logging():
    """Log all unhandled exceptions to the log file."""
    def _log_excepthook(exctype, value, tb):
        logging.critical(
            "Unhandled exception",
            exc_info=(exctype, value, tb)
        )
        sys.__excepthook__(exctype, value, tb)

    sys.excepthook = _log_excepthook


def log_and_status(status_fn, msg: str, level: str = "info", ui_msg: str = None):
    """
    Log a message to log file, console, AND UI status field.

    Args:
        status_fn: Function to update UI status field
        msg: Detailed message for log file and console
        level: Log level - "info", "warning", or "error"
        ui_msg: Optional user-friendly message for UI
    """
    if ui_msg is None:
        ui_msg = msg

    if level == "error":
        logging.error(msg)
    elif level == "warning":
        logging.warning(msg)
    else:
        logging.info(msg)

    if status_fn is not None:
        try:
            status_fn(ui_msg)
        except Exception as e:
            logging.warning(f"status_fn raised while logging message: {e}", exc_info=True)
            print(f"[STATUS] {ui_msg}")

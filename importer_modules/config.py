"""
Configuration and logging management for Vendure Catalog Importer.
"""

import os
import sys
import json
import logging

from dotenv import load_dotenv

# Version
SCRIPT_VERSION = "1.4.0 - Vendure Catalog Importer (Admin API, hierarchical collections)"

# File paths
APP_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_FILE = os.path.join(APP_DIR, "config.json")
ENV_FILE = os.path.join(APP_DIR, ".env")

# Config keys that may be overridden from the process environment (or .env)
ENV_OVERRIDE_KEYS = [
    "ADMIN_API", "ADMIN_USER", "ADMIN_PASS", "VENDURE_CHANNEL",
    "DEFAULT_STOCK_ON_HAND", "DEFAULT_LANGUAGE",
    "INPUT_FILE", "PRODUCT_OUTPUT_FILE", "COLLECTIONS_OUTPUT_FILE", "LOG_FILE",
    "EXECUTION_MODE", "MAX_IMAGES", "IMAGE_WORKERS",
    "REQUEST_TIMEOUT", "IMAGE_TIMEOUT", "RETRY_ATTEMPTS", "RETRY_BASE_DELAY_MS",
    "ROW_DELAY_SECONDS", "REINDEX_AFTER_IMPORT",
]

# Legacy input path keys; both the old script env vars and old config.json files use them
LEGACY_INPUT_KEYS = ["CSV_PATH", "XLSX_PATH"]


def default_config():
    """Return a fresh copy of the default configuration."""
    return {
        "_SYSTEM SETTINGS": "These are system settings specified in the Settings dialog.",
        "ADMIN_API": "http://localhost:3000/admin-api",
        "ADMIN_USER": "superadmin",
        "ADMIN_PASS": "superadmin",
        "VENDURE_CHANNEL": "",
        "DEFAULT_LANGUAGE": "en",
        "DEFAULT_STOCK_ON_HAND": 100,
        "_IMPORT_SETTINGS": "Tuning for image uploads, retries and pacing.",
        "MAX_IMAGES": 5,
        "IMAGE_WORKERS": 3,
        "REQUEST_TIMEOUT": 30,
        "IMAGE_TIMEOUT": 15,
        "RETRY_ATTEMPTS": 3,
        "RETRY_BASE_DELAY_MS": 300,
        "ROW_DELAY_SECONDS": 0.2,
        "REINDEX_AFTER_IMPORT": False,
        "_USER SETTINGS": "These are user settings specified in the main UI.",
        "INPUT_FILE": "",
        "PRODUCT_OUTPUT_FILE": "",
        "COLLECTIONS_OUTPUT_FILE": "",
        "LOG_FILE": "",
        "EXECUTION_MODE": "resume",
        "WINDOW_GEOMETRY": "900x800"
    }


def _read_config_file():
    """Read config.json, creating it with defaults when missing."""
    default = default_config()

    try:
        if not os.path.exists(CONFIG_FILE):
            with open(CONFIG_FILE, "w", encoding="utf-8") as f:
                json.dump(default, f, indent=4)
            return default

        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            loaded_config = json.load(f)

        migrated = False

        # Migrate old CSV_PATH / XLSX_PATH to INPUT_FILE
        for legacy_key in LEGACY_INPUT_KEYS:
            if legacy_key in loaded_config:
                legacy_value = loaded_config.pop(legacy_key)
                if legacy_value and not loaded_config.get("INPUT_FILE"):
                    loaded_config["INPUT_FILE"] = legacy_value
                    logging.info(f"Migrated {legacy_key} to INPUT_FILE")
                migrated = True

        # Ensure all new fields exist
        for key, value in default.items():
            if key not in loaded_config:
                loaded_config[key] = value

        if migrated:
            save_config(loaded_config)

        return loaded_config
    except json.JSONDecodeError as e:
        logging.error(f"Failed to parse config.json: {e}. Using defaults.")
        return default
    except IOError as e:
        logging.error(f"Failed to read/write config.json: {e}. Using defaults.")
        return default


def apply_env_overrides(cfg, environ=None):
    """
    Overlay environment variables on top of file configuration.

    The original import scripts were driven purely by environment variables
    (ADMIN_API, ADMIN_USER, CSV_PATH, ...), so those names keep working here.

    Args:
        cfg: Configuration dictionary (modified in place)
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        The same configuration dictionary
    """
    if environ is None:
        environ = os.environ

    for key in ENV_OVERRIDE_KEYS:
        value = environ.get(key)
        if value is not None and value != "":
            cfg[key] = value

    # CSV_PATH / XLSX_PATH win over INPUT_FILE when set
    for legacy_key in LEGACY_INPUT_KEYS:
        value = environ.get(legacy_key)
        if value:
            cfg["INPUT_FILE"] = value

    return cfg


def load_config():
    """Load configuration from config.json, .env and the environment."""
    cfg = _read_config_file()

    if os.path.exists(ENV_FILE):
        load_dotenv(ENV_FILE, override=False)

    return apply_env_overrides(cfg)


def save_config(config):
    """Save configuration to config.json."""
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=4)
    except IOError as e:
        logging.error(f"Failed to write config.json: {e}")


def get_int(cfg, key, default=None):
    """Read an integer setting, falling back to the default on bad input."""
    if default is None:
        default = default_config().get(key, 0)
    try:
        return int(str(cfg.get(key, default)).strip())
    except (TypeError, ValueError):
        logging.warning(f"Invalid integer for {key}: {cfg.get(key)!r}. Using {default}.")
        return default


def get_float(cfg, key, default=None):
    """Read a float setting, falling back to the default on bad input."""
    if default is None:
        default = default_config().get(key, 0.0)
    try:
        return float(str(cfg.get(key, default)).strip())
    except (TypeError, ValueError):
        logging.warning(f"Invalid number for {key}: {cfg.get(key)!r}. Using {default}.")
        return default


def get_bool(cfg, key, default=False):
    """Read a boolean setting; accepts true/false, yes/no, 1/0."""
    value = cfg.get(key, default)
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    return default


def setup_logging(log_path: str, level: int = logging.INFO):
    """
    Configure logging to file and console.

    Args:
        log_path: Path to log file (console only when empty)
        level: Console logging level (typically INFO)
    """
    try:
        for h in logging.root.handlers[:]:
            logging.root.removeHandler(h)

        if log_path:
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
            )
            logging.root.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        )

        logging.root.setLevel(logging.DEBUG)
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
        status_fn: Function to update UI status field (print for the CLI)
        msg: Detailed message for log file and console
        level: Log level - "info", "warning", or "error"
        ui_msg: Optional user-friendly message for UI
    """
    if ui_msg is None:
        ui_msg = msg
        for scheme in ('https://', 'http://'):
            if scheme in ui_msg and 'Admin API' not in ui_msg:
                ui_msg = ui_msg.split(scheme)[0].strip()

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

"""
Configuration and logging management for Shopify Media Uploader.
"""

import os
import sys
import json
import logging
from dataclasses import dataclass

# Version
SCRIPT_VERSION = "1.2.0 - Shopify Media Uploader (API 2025-10 Staged Uploads)"

# File paths
APP_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_FILE = os.path.join(APP_DIR, "config.json")

DEFAULT_API_VERSION = "2025-10"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT = "image/webp,image/apng,image/*,*/*;q=0.8"

DEFAULT_CONFIG = {
    "_SYSTEM SETTINGS": "Store credentials and API version.",
    "SHOPIFY_STORE_URL": "",
    "SHOPIFY_ACCESS_TOKEN": "",
    "API_VERSION": DEFAULT_API_VERSION,
    "_HTTP SETTINGS": "Timeouts in seconds and download headers.",
    "REQUEST_TIMEOUT": 30,
    "UPLOAD_TIMEOUT": 120,
    "DOWNLOAD_TIMEOUT": 60,
    "MAX_RETRIES": 3,
    "DOWNLOAD_USER_AGENT": DEFAULT_USER_AGENT,
    "DOWNLOAD_ACCEPT": DEFAULT_ACCEPT,
    "_STAGED UPLOAD SETTINGS": "Direct-to-storage upload behaviour.",
    "STAGED_UPLOAD_METHOD": "POST",
    "STAGED_UPLOAD_ATTEMPTS": 2,
    "MULTIPART_CRLF_BEFORE_CLOSING": True,
    "MULTIPART_TRAILING_CRLF": True,
    "MULTIPART_CONTENT_TYPE_PARAM": "",
    "_BATCH SETTINGS": "Pacing between batches to respect API rate limits.",
    "BATCH_SIZE": 10,
    "BATCH_PAUSE_SECONDS": 2.0,
    "_CDN SETTINGS": "Polling for processed asset URLs.",
    "CDN_POLL_MAX_WAIT": 180,
    "CDN_POLL_INTERVAL": 10,
    "CDN_POLL_JITTER": 0,
    "REFERENCE_CHECK_WAIT": 20,
    "CDN_CHECK_RETRIES": 3,
    "_METADATA SETTINGS": "Business identifier metafields stored on each asset.",
    "METAFIELD_NAMESPACE": "migration",
    "METAFIELD_RETRIES": 2,
    "_USER SETTINGS": "Settings specified on the command line.",
    "LOG_FILE": "",
}


def load_config():
    """Load configuration from config.json or create with defaults."""
    default = dict(DEFAULT_CONFIG)

    try:
        if not os.path.exists(CONFIG_FILE):
            with open(CONFIG_FILE, "w", encoding="utf-8") as f:
                json.dump(default, f, indent=4)
            return default
        else:
            with open(CONFIG_FILE, "r", encoding="utf-8") as f:
                loaded_config = json.load(f)

            # Migrate old SHOPIFY_API_VERSION to API_VERSION
            if "SHOPIFY_API_VERSION" in loaded_config and "API_VERSION" not in loaded_config:
                loaded_config["API_VERSION"] = loaded_config.pop("SHOPIFY_API_VERSION")
                logging.info("Migrated SHOPIFY_API_VERSION to API_VERSION")
                save_config(loaded_config)

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


def get_setting(cfg, key):
    """Read a setting from cfg, falling back to the built-in default."""
    value = cfg.get(key)
    if value is None or value == "":
        return DEFAULT_CONFIG.get(key, value)
    return value


def get_credentials(cfg):
    """
    Return (store_host, access_token) from cfg.

    The store URL is stripped of any scheme so callers can build
    https://{store_host}/admin/... URLs directly. Empty strings are returned
    when a credential is missing.
    """
    store_url = str(cfg.get("SHOPIFY_STORE_URL", "") or "").strip()
    access_token = str(cfg.get("SHOPIFY_ACCESS_TOKEN", "") or "").strip()
    store_url = store_url.replace("https://", "").replace("http://", "").rstrip("/")
    return store_url, access_token


@dataclass(frozen=True)
class HttpConfig:
    """HTTP settings for requests that do not go to the Admin API host."""

    upload_timeout: float = 120
    download_timeout: float = 60
    user_agent: str = DEFAULT_USER_AGENT
    accept: str = DEFAULT_ACCEPT

    def download_headers(self):
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }


def http_config_from_cfg(cfg):
    """Build an HttpConfig from the configuration dictionary."""
    return HttpConfig(
        upload_timeout=float(get_setting(cfg, "UPLOAD_TIMEOUT")),
        download_timeout=float(get_setting(cfg, "DOWNLOAD_TIMEOUT")),
        user_agent=get_setting(cfg, "DOWNLOAD_USER_AGENT"),
        accept=get_setting(cfg, "DOWNLOAD_ACCEPT"),
    )


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
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
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
    Log a message to log file, console, AND the caller's status callback.

    Args:
        status_fn: Function receiving user-facing progress messages (may be None)
        msg: Detailed message for log file and console
        level: Log level - "debug", "info", "warning", or "error"
        ui_msg: Optional user-friendly message for the status callback
    """
    if ui_msg is None:
        ui_msg = msg
        if 'https://' in ui_msg and 'CDN URL' not in ui_msg:
            ui_msg = ui_msg.split('https://')[0].strip()

    # Always log to file/console first
    if level == "error":
        logging.error(msg)
    elif level == "warning":
        logging.warning(msg)
    elif level == "debug":
        logging.debug(msg)
        return
    else:
        logging.info(msg)

    if status_fn is not None:
        try:
            status_fn(ui_msg)
        except Exception as e:
            logging.warning(f"status_fn raised while logging message: {e}", exc_info=True)
            print(f"[STATUS] {ui_msg}")

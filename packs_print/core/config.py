"""
Config utilities for Packs Print.

Responsibilities:
- Resolve the config path with environment and XDG support
- Provide JSON load/save helpers for the service config
- Merge defaults, the config file, and environment overrides into settings
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/packsprint/config.json
    2) ~/.config/packsprint/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "packsprint" / "config.json")
    return str(Path.home() / ".config" / "packsprint" / "config.json")


def get_config_path() -> str:
    """
    Return the config path honoring PACKSPRINT_CONFIG_PATH override.
    """
    return os.environ.get("PACKSPRINT_CONFIG_PATH", default_config_path())


DEFAULTS: Dict[str, Any] = {
    "printer_type": "lp",
    "device": "/dev/usb/lp0",
    "media": "2x1",
    "print_delay_ms": 2000,
    "status_interval_ms": 10000,
    "reconnect_delay_ms": 5000,
    "reconnect_max_delay_ms": 60000,
    "job_timeout_seconds": 60,
    "templates_dir": str(PACKAGE_ROOT / "label_templates"),
    "template_encoding": "latin-1",
    "jobs_max": 200,
    # python-escpos backends
    "usb_vendor_id": "0x04b8",
    "usb_product_id": "0x0e28",
    "network_ip": "",
    "network_port": 9100,
    "serial_port": "",
    "serial_baudrate": 19200,
    "printer_profile": None,
}

# setting key -> (environment variable, type)
ENV_OVERRIDES: Dict[str, tuple] = {
    "printer_type": ("PACKSPRINT_PRINTER_TYPE", str),
    "device": ("PRINTER_DEVICE", str),
    "media": ("PRINTER_MEDIA", str),
    "print_delay_ms": ("PRINT_DELAY_MS", int),
    "status_interval_ms": ("STATUS_INTERVAL", int),
    "reconnect_delay_ms": ("PACKSPRINT_RECONNECT_DELAY_MS", int),
    "job_timeout_seconds": ("PACKSPRINT_JOB_TIMEOUT", float),
    "templates_dir": ("PACKSPRINT_TEMPLATES_DIR", str),
    "jobs_max": ("PACKSPRINT_JOBS_MAX", int),
}


def load_config(path: Optional[str] = None) -> Optional[dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


def _coerce(key: str, raw: str, kind: type) -> Any:
    try:
        return kind(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid value for %s: %r", key, raw)
        return DEFAULTS[key]


def load_settings(path: Optional[str] = None, env: Optional[dict[str, str]] = None) -> dict[str, Any]:
    """
    Effective settings: defaults, then the config file, then environment
    overrides. A missing config file is not an error.
    """
    environ = os.environ if env is None else env
    settings = dict(DEFAULTS)
    cfg = load_config(path)
    if cfg:
        settings.update({k: v for k, v in cfg.items() if v is not None})
    for key, (var, kind) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is not None and raw.strip() != "":
            settings[key] = _coerce(key, raw.strip(), kind)
    return settings


__all__ = [
    "DEFAULTS",
    "ENV_OVERRIDES",
    "default_config_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
]

"""
Core utilities for Packs Print.

This package groups non-Flask helpers used across the service:
- config: config path, JSON load/save, merged settings
- logging: request/job aware logging filters, formatters and root logger config
"""

from .config import (
    DEFAULTS,
    default_config_path,
    get_config_path,
    load_config,
    load_settings,
    save_config,
)
from .logging import (
    JsonFormatter,
    RequestIdFilter,
    configure_logging,
    current_job_id,
    job_context,
)

__all__ = [
    # config
    "DEFAULTS",
    "default_config_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
    # logging
    "configure_logging",
    "current_job_id",
    "job_context",
    "RequestIdFilter",
    "JsonFormatter",
]

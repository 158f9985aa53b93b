"""
Web module for Packs Print.

Exposes blueprints for:
- Versioned JSON API (job submission, queue control, device): api_bp
- Health endpoint: health_bp
"""

from .api import api_bp
from .health import health_bp

__all__ = ["api_bp", "health_bp"]

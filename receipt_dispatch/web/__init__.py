"""
Web module for Receipt Dispatch.

Exposes blueprints for:
- JSON API (print submission, device listing): api_bp
- Health endpoint: health_bp
"""

from .api import api_bp
from .health import health_bp

__all__ = ["api_bp", "health_bp"]

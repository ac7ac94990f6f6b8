# assetdesk/config/__init__.py
"""
assetdesk.config holds deployment identity (letterhead for PDFs).
Runtime settings live in assetdesk.settings.
"""
from __future__ import annotations

from .institution import institution_context

__all__ = ["institution_context"]

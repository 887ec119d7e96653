"""API route handlers."""
from . import simplefin_items

__all__ = ["simplefin_items"]

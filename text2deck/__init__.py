"""Source text -> evidence cards -> outline -> Slidev deck -> coverage report."""
from __future__ import annotations

__version__ = "0.3.0"

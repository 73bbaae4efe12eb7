"""State/store layer.

This package is the single source of truth for how item states from REST
reads, stream pushes, and expiry refreshes end up in the value cache.
"""

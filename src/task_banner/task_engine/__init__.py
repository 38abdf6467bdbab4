"""Task tree storage engine.

This package provides the nested task model, the recursive tree navigator,
the persistence gateways (single JSON/YAML document or SQLite rows) and the
engine that runs every operation under a reader/writer lock.
"""

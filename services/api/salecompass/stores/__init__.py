"""Data stores.

- PostgreSQL: engine, session lifecycle, ORM base
- Redis: per-upload chunk buffers with TTL

No import or matching logic in stores; that belongs in services.
"""

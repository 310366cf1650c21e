"""
services package

Fleet status cache (`status_store`, `status_cache`), the status payload
generator (`status_payload`) and the read-only text renderers
(`dashboard_view`).
"""

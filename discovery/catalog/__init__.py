"""
Catalog access layer.

Responsibilities:
- Define the read-only operations the ranking engine needs from the store.
- Normalize raw business rows into the typed Candidate shape.
- Provide a pandas-backed store over the processed CSV tables.
- Degrade to public access when service credentials are missing.
"""

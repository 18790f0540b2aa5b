"""
Cross-Instance Record Migrator

Migrates records, and the child records that depend on them, between two
independently configured instances of the same business platform.

Supports:
- Field and picklist reconciliation between divergent schemas
- Parent -> child cascades with foreign keys rewritten to target IDs
- Remapping of one designated lookup field by display name
- Batched insert or idempotent upsert by external identifier
- Categorized per-record errors and exact rollback
"""

__version__ = "0.1.0"

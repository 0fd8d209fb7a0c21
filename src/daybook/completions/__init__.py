"""
Completion records.

Components:
- completion_models.py: Completion, Outcome, payload rules, wire format
- completion_store.py: SQLite-backed store keyed by (task_id, day)
- completion_index.py: in-memory snapshot with the same query surface
"""

"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Section, RecurrenceSpec, enums, TaskArena)
- recurrence.py: rule validation and the is_scheduled evaluator
- recurrence_wire.py: JSON wire format for recurrence rules
- series.py: "this occurrence" / "this and future" series splits
- task_store.py: SQLite-backed task and section storage
"""

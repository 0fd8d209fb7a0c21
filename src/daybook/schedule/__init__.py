"""
Derived views and the writes that feed them.

Components:
- projector.py: today, backlog, history and calendar projections
- rollover.py: rollover / off-schedule / toggle mutations
- grace_window.py: short-lived visibility overrides
- section_collapse.py: per-section auto-collapse state machine
"""

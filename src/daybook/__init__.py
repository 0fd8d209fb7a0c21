"""
daybook: recurrence evaluation and completion tracking for a task/habit manager.

Library surface:
- is_scheduled: does a task occur on a calendar day
- CompletionStore / CompletionIndex: per-(task, day) records and their lookups
- todays_tasks / backlog / history_rows: the derived views
- RolloverCoordinator: rollover, off-schedule and toggle writes
- SectionCollapsePolicy / GraceWindow: explicit view state passed into the views
- create_engine_state: wires everything from Settings
"""

from .bootstrap import create_engine_state
from .completions.completion_index import CompletionIndex
from .completions.completion_store import CompletionStore
from .schedule.grace_window import GraceWindow
from .schedule.projector import backlog, history_rows, todays_tasks
from .schedule.rollover import RolloverCoordinator
from .schedule.section_collapse import SectionCollapsePolicy
from .tasks.recurrence import is_scheduled

__all__ = [
    "CompletionIndex",
    "CompletionStore",
    "GraceWindow",
    "RolloverCoordinator",
    "SectionCollapsePolicy",
    "backlog",
    "create_engine_state",
    "history_rows",
    "is_scheduled",
    "todays_tasks",
]

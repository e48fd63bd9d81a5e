"""Supervised execution of user programs."""

from .process_tree import kill_process_tree
from .session import ProcessSession, SessionState
from .supervisor import ProcessSupervisor

__all__ = [
    "ProcessSession",
    "ProcessSupervisor",
    "SessionState",
    "kill_process_tree",
]

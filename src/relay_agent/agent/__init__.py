"""
Agent module - the brain of the system.

Includes:
- AgentLoop: bounded model/tool exchange for one message
- TurnDispatcher: per-message sequencing, overload retry, delivery
"""

from .core import MAX_STEPS_MESSAGE, AgentLoop, AgentReply, to_turn_log
from .dispatcher import APOLOGY_MESSAGE, TurnDispatcher

__all__ = [
    "AgentLoop",
    "AgentReply",
    "MAX_STEPS_MESSAGE",
    "to_turn_log",
    "TurnDispatcher",
    "APOLOGY_MESSAGE",
]

from .engine import TransitionError, get_transition, record_transition, resolve_transition
from .registry import CLIENT_ENTRY, WORKFLOWS, Transition

__all__ = [
    "CLIENT_ENTRY",
    "Transition",
    "TransitionError",
    "WORKFLOWS",
    "get_transition",
    "record_transition",
    "resolve_transition",
]

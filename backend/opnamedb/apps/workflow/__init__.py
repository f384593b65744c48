from .engine import TransitionError, apply_transition
from .registry import NEW, WORKFLOWS

__all__ = ["NEW", "TransitionError", "WORKFLOWS", "apply_transition"]

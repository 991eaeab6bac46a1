"""Core agent loop: completion detection and the iteration state machine."""

from gralph.loop.completion import PROMISE_WINDOW, is_complete
from gralph.loop.context import LoopCallback, LoopOptions, LoopResult, LoopUpdate
from gralph.loop.runner import check_preconditions, cleanup_old_logs, run_loop

__all__ = [
    "PROMISE_WINDOW",
    "LoopCallback",
    "LoopOptions",
    "LoopResult",
    "LoopUpdate",
    "check_preconditions",
    "cleanup_old_logs",
    "is_complete",
    "run_loop",
]

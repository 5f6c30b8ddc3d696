"""
pysmtplan: temporal and numeric planning as satisfiability modulo theories.

A grounded task is compiled, layer by layer, into a z3 formula whose models
are plans with a bounded number of happenings.
"""

from pysmtplan.config import PlannerConfig
from pysmtplan.encoders.temporal import EncoderTemporal
from pysmtplan.planner.session import SolverSession, SolveResult
from pysmtplan.task.task import GroundAction, GroundTask, TimedInitialLiteral

__all__ = [
    "EncoderTemporal",
    "GroundAction",
    "GroundTask",
    "PlannerConfig",
    "SolveResult",
    "SolverSession",
    "TimedInitialLiteral",
]

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Optional, Sequence, Union

from pysmtplan.task.ast import Comparison, Comparator, Constant, DURATION, Effect, EffectList, Goal, Truth

Number = Union[int, float, Fraction]


@dataclass
class GroundAction:
    """
    A ground action. Instantaneous actions have no duration constraints and
    their effects happen at the single instant they are applied. Durative
    actions carry duration constraints over ``?duration`` and timed
    conditions/effects.
    """
    name: str
    condition: Goal = field(default_factory=lambda: Truth(True))
    effect: Effect = field(default_factory=lambda: EffectList(()))
    durative: bool = False
    duration: Sequence[Goal] = ()

    @classmethod
    def durative_action(cls, name, min_duration, max_duration=None, condition=None, effect=None):
        """Shortcut for a durative action with ``min <= ?duration <= max``."""
        if max_duration is None:
            bounds = (Comparison(Comparator.EQ, DURATION, Constant(min_duration)),)
        else:
            bounds = (Comparison(Comparator.GE, DURATION, Constant(min_duration)),
                      Comparison(Comparator.LE, DURATION, Constant(max_duration)))
        return cls(name,
                   condition if condition is not None else Truth(True),
                   effect if effect is not None else EffectList(()),
                   durative=True,
                   duration=bounds)


@dataclass
class TimedInitialLiteral:
    """Effects that happen at a fixed absolute time, independent of any action."""
    time: Number
    effect: Effect
    name: Optional[str] = None


@dataclass
class GroundTask:
    """
    The grounded task: index spaces plus everything the encoder reads.

    ``literals`` and ``fluents`` are the names of the ground literals and
    numeric fluents; their positions are the indices the syntax trees use.
    ``initial_literals`` holds the indices true in the initial state (closed
    world). ``initial_fluents`` maps fluent indices to initial values; fluents
    missing from it are left unconstrained.
    """
    literals: List[str]
    fluents: List[str]
    actions: List[GroundAction]
    goal: Goal
    initial_literals: frozenset = frozenset()
    initial_fluents: Dict[int, Number] = field(default_factory=dict)
    timed_initial_literals: List[TimedInitialLiteral] = field(default_factory=list)
    name: str = "task"

    def __post_init__(self):
        self.initial_literals = frozenset(self.initial_literals)

    @property
    def num_literals(self):
        return len(self.literals)

    @property
    def num_fluents(self):
        return len(self.fluents)

    @property
    def num_actions(self):
        return len(self.actions)

    def literal_index(self, name):
        return self.literals.index(name)

    def fluent_index(self, name):
        return self.fluents.index(name)

    def action_index(self, name):
        for i, action in enumerate(self.actions):
            if action.name == name:
                return i
        raise KeyError(name)

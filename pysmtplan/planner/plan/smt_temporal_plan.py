from dataclasses import dataclass
from fractions import Fraction
from typing import Optional

import z3


def _to_fraction(value):
    """Converts a z3 numeral (rational or algebraic) to a Fraction."""
    if z3.is_rational_value(value):
        return value.as_fraction()
    if z3.is_algebraic_value(value):
        return value.approx(20).as_fraction()
    raise ValueError(f"Not a numeral: {value}")


def _fmt(value):
    return f"{float(value):.3f}"


@dataclass(frozen=True)
class Happening:
    time: Fraction
    action: str
    start_layer: int
    end_layer: int
    duration: Optional[Fraction] = None

    def __str__(self):
        line = f"{_fmt(self.time)}: ({self.action})"
        if self.duration is not None:
            line += f" [{_fmt(self.duration)}]"
        return line


class SMTTemporalPlan:
    """
    Read-only view of a model of the temporal encoding: the action
    occurrences with their times and durations, the layer times, and the
    values of every fluent at every layer.
    """

    def __init__(self, happenings, layer_times, trajectories, task):
        self.happenings = sorted(happenings, key=lambda x: (x.time, x.start_layer, x.action))
        self.layer_times = layer_times
        self.trajectories = trajectories
        self.task = task
        self._plan_str = None

    @classmethod
    def from_model(cls, encoder, model, horizon):
        """!
        Reads a plan from a model of an EncoderTemporal.

        @param encoder: the encoder that built the formula
        @param model: a z3 model of that formula
        @param horizon: the bound the formula was built for
        @returns: an SMTTemporalPlan
        """
        def value(expr):
            return model.eval(expr, model_completion=True)

        variables = encoder.vars
        layer_times = [_to_fraction(value(variables.time(h))) for h in range(horizon + 1)]

        happenings = []
        for a, action in enumerate(encoder.task.actions):
            for h in range(horizon):
                if not z3.is_true(value(variables.start(a, h))):
                    continue
                if not action.durative:
                    happenings.append(Happening(layer_times[h], action.name, h, h))
                    continue
                end_layer = next((k for k in range(h + 1, horizon + 1)
                                  if z3.is_true(value(variables.end(a, k)))), horizon)
                duration = _to_fraction(value(variables.duration(a, h)))
                happenings.append(Happening(layer_times[h], action.name, h, end_layer, duration))

        trajectories = {}
        for f, name in enumerate(encoder.task.fluents):
            trajectories[name] = [(layer_times[h],
                                   _to_fraction(value(variables.fluent(f, h))),
                                   _to_fraction(value(variables.fluent(f, h, post=True))))
                                  for h in range(horizon + 1)]

        return cls(happenings, layer_times, trajectories, encoder.task)

    def __len__(self):
        """!
        Returns the length of the plan.

        @return the number of action occurrences in the plan.
        """
        return len(self.happenings)

    def __iter__(self):
        return iter(self.happenings)

    def __str__(self):
        """!
        Returns the plan, one ``time: (action) [duration]`` line per occurrence.
        """
        if self._plan_str is None:
            self._plan_str = "\n".join(str(h) for h in self.happenings)
        return self._plan_str

    def __hash__(self) -> int:
        return hash(str(self))

    def __eq__(self, value) -> bool:
        return self.__hash__() == value.__hash__()

    def makespan(self):
        """Time of the last happening end, 0 for an empty plan."""
        ends = [self.layer_times[h.end_layer] for h in self.happenings]
        return max(ends, default=Fraction(0))

    def fluent_trajectory(self, name):
        """!
        Values of a fluent over the layers.

        @return list of (layer time, pre value, post value)
        """
        return self.trajectories[name]

    def occurrences(self, action_name):
        return [h for h in self.happenings if h.action == action_name]

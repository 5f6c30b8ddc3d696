"""
Syntax tree for grounded conditions, effects and numeric expressions.

Every leaf refers to ground entities by index: literals into the literal
index space of a GroundTask, fluents into its numeric fluent index space.
Quantified goals and effects carry their instances already expanded by the
grounder, so the encoder never re-quantifies anything.
"""

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Tuple, Union


class TimeSpec(Enum):
    AT_START = "at start"
    AT_END = "at end"
    OVER_ALL = "over all"
    CONTINUOUS = "continuous"


class Comparator(Enum):
    LT = "<"
    LE = "<="
    EQ = "="
    GE = ">="
    GT = ">"


class AssignOp(Enum):
    ASSIGN = "assign"
    INCREASE = "increase"
    DECREASE = "decrease"
    SCALE_UP = "scale-up"
    SCALE_DOWN = "scale-down"


class Quantifier(Enum):
    FORALL = "forall"
    EXISTS = "exists"


class SpecialSymbol(Enum):
    DURATION = "?duration"
    TIME = "#t"


# ---------------------------------------------------------------------------
# numeric expressions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Constant:
    value: Union[int, float, Fraction]


@dataclass(frozen=True)
class FluentTerm:
    fluent: int


@dataclass(frozen=True)
class SpecialValue:
    symbol: SpecialSymbol


@dataclass(frozen=True)
class BinaryOp:
    op: str  # one of + - * /
    lhs: "NumExpr"
    rhs: "NumExpr"

    def __post_init__(self):
        if self.op not in ("+", "-", "*", "/"):
            raise ValueError(f"Unknown arithmetic operator {self.op!r}")


@dataclass(frozen=True)
class UMinus:
    arg: "NumExpr"


NumExpr = Union[Constant, FluentTerm, SpecialValue, BinaryOp, UMinus]


def Plus(lhs, rhs):
    return BinaryOp("+", lhs, rhs)


def Minus(lhs, rhs):
    return BinaryOp("-", lhs, rhs)


def Mul(lhs, rhs):
    return BinaryOp("*", lhs, rhs)


def Div(lhs, rhs):
    return BinaryOp("/", lhs, rhs)


DURATION = SpecialValue(SpecialSymbol.DURATION)
TIME = SpecialValue(SpecialSymbol.TIME)


# ---------------------------------------------------------------------------
# goals / conditions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LiteralGoal:
    literal: int


@dataclass(frozen=True)
class Truth:
    value: bool


@dataclass(frozen=True)
class NegGoal:
    arg: "Goal"


@dataclass(frozen=True)
class ConjGoal:
    args: Tuple["Goal", ...]


@dataclass(frozen=True)
class DisjGoal:
    args: Tuple["Goal", ...]


@dataclass(frozen=True)
class ImplyGoal:
    lhs: "Goal"
    rhs: "Goal"


@dataclass(frozen=True)
class QuantifiedGoal:
    quantifier: Quantifier
    instances: Tuple["Goal", ...]


@dataclass(frozen=True)
class TimedGoal:
    when: TimeSpec
    arg: "Goal"


@dataclass(frozen=True)
class Comparison:
    op: Comparator
    lhs: NumExpr
    rhs: NumExpr


Goal = Union[LiteralGoal, Truth, NegGoal, ConjGoal, DisjGoal, ImplyGoal,
             QuantifiedGoal, TimedGoal, Comparison]


def And(*args):
    return ConjGoal(tuple(args))


def Or(*args):
    return DisjGoal(tuple(args))


def Not(arg):
    return NegGoal(arg)


# ---------------------------------------------------------------------------
# effects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SimpleEffect:
    literal: int
    add: bool = True


@dataclass(frozen=True)
class Assignment:
    op: AssignOp
    fluent: int
    expr: NumExpr


@dataclass(frozen=True)
class CondEffect:
    condition: Goal
    effect: "Effect"


@dataclass(frozen=True)
class ForallEffect:
    instances: Tuple["Effect", ...]


@dataclass(frozen=True)
class TimedEffect:
    when: TimeSpec
    effect: "Effect"

    def __post_init__(self):
        if self.when is TimeSpec.OVER_ALL:
            raise ValueError("Effects cannot be timed 'over all'")


@dataclass(frozen=True)
class EffectList:
    effects: Tuple["Effect", ...]


Effect = Union[SimpleEffect, Assignment, CondEffect, ForallEffect, TimedEffect, EffectList]


def Effects(*effects):
    return EffectList(tuple(effects))


GOAL_NODES = (LiteralGoal, Truth, NegGoal, ConjGoal, DisjGoal, ImplyGoal,
              QuantifiedGoal, TimedGoal, Comparison)
EFFECT_NODES = (SimpleEffect, Assignment, CondEffect, ForallEffect, TimedEffect, EffectList)
NUMERIC_NODES = (Constant, FluentTerm, SpecialValue, BinaryOp, UMinus)

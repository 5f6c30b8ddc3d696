import logging

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from pysmtplan.task.ast import (Assignment, AssignOp, BinaryOp, CondEffect, EffectList, ForallEffect,
                                SimpleEffect, SpecialSymbol, SpecialValue, TimedEffect, TimeSpec, UMinus)
from pysmtplan.exceptions import IndexSpaceError, UnsupportedConstructError

logger = logging.getLogger(__name__)


class Instant(Enum):
    START = "start"
    END = "end"


class EffectKind(Enum):
    ADD = "add"
    DELETE = "delete"
    ASSIGN = "assign"


@dataclass(frozen=True)
class EffectRecord:
    actor: int
    instant: Instant
    target: int
    kind: EffectKind
    conditions: Tuple = ()
    node: Optional[object] = None


@dataclass(frozen=True)
class FlowRecord:
    """A continuous effect: ``expr`` mentions ``#t`` exactly once, as a factor."""
    actor: int
    fluent: int
    expr: object
    sign: int
    conditions: Tuple = ()


def _mentions_time(expr):
    if isinstance(expr, SpecialValue):
        return expr.symbol is SpecialSymbol.TIME
    if isinstance(expr, BinaryOp):
        return _mentions_time(expr.lhs) or _mentions_time(expr.rhs)
    if isinstance(expr, UMinus):
        return _mentions_time(expr.arg)
    return False


def _is_time(expr):
    return isinstance(expr, SpecialValue) and expr.symbol is SpecialSymbol.TIME


def _is_linear_in_time(expr):
    """#t, rate * #t or #t * rate, with #t absent from the rate."""
    if _is_time(expr):
        return True
    if isinstance(expr, BinaryOp) and expr.op == "*":
        if _is_time(expr.rhs):
            return not _mentions_time(expr.lhs)
        if _is_time(expr.lhs):
            return not _mentions_time(expr.rhs)
    return False


class EffectIndex:
    """!
    Inverts "actor -> effects" into "effect target -> contributing actors".

    Actors are the ground actions followed by the timed initial literal
    pseudo actions, numbered as the encoder numbers them. The index is built
    once and never modified afterwards; frame axioms read it at every layer.
    """

    def __init__(self, actors, num_literals, num_fluents):
        self.num_literals = num_literals
        self.num_fluents = num_fluents
        self.num_actions = len(actors)

        self._adders = defaultdict(list)     # (lit, instant) -> [EffectRecord]
        self._deleters = defaultdict(list)   # (lit, instant) -> [EffectRecord]
        self._assigners = defaultdict(list)  # (fluent, instant) -> [EffectRecord]
        self._flows = defaultdict(list)      # fluent -> [FlowRecord]
        self._by_actor = defaultdict(list)   # (actor, instant) -> [EffectRecord]

        for a, actor in enumerate(actors):
            self._index_effect(a, actor, actor.effect, None, ())
            self._check_combined_assignments(a, actor)
        self._drop_overridden_deletes()

        logger.debug("Effect index: %d literal targets, %d fluent targets, %d flows",
                     len({k[0] for k in self._adders} | {k[0] for k in self._deleters}),
                     len({k[0] for k in self._assigners}),
                     sum(len(v) for v in self._flows.values()))

    def _index_effect(self, a, actor, effect, when, conditions):
        if isinstance(effect, EffectList):
            for e in effect.effects:
                self._index_effect(a, actor, e, when, conditions)
        elif isinstance(effect, ForallEffect):
            for e in effect.instances:
                self._index_effect(a, actor, e, when, conditions)
        elif isinstance(effect, CondEffect):
            self._index_effect(a, actor, effect.effect, when, conditions + (effect.condition,))
        elif isinstance(effect, TimedEffect):
            if when is not None:
                raise UnsupportedConstructError(f"Nested timed effect in {actor.name}")
            if not actor.durative:
                raise UnsupportedConstructError(f"Timed effect in instantaneous action {actor.name}")
            self._index_effect(a, actor, effect.effect, effect.when, conditions)
        elif isinstance(effect, SimpleEffect):
            self._check_literal(effect.literal, actor)
            instant = self._instant(actor, when)
            kind = EffectKind.ADD if effect.add else EffectKind.DELETE
            record = EffectRecord(a, instant, effect.literal, kind, conditions, effect)
            table = self._adders if effect.add else self._deleters
            table[(effect.literal, instant)].append(record)
            self._by_actor[(a, instant)].append(record)
        elif isinstance(effect, Assignment):
            self._check_fluent(effect.fluent, actor)
            if when is TimeSpec.CONTINUOUS:
                self._index_flow(a, actor, effect, conditions)
                return
            if _mentions_time(effect.expr):
                raise UnsupportedConstructError(f"#t in a discrete effect of {actor.name}")
            instant = self._instant(actor, when)
            record = EffectRecord(a, instant, effect.fluent, EffectKind.ASSIGN, conditions, effect)
            self._assigners[(effect.fluent, instant)].append(record)
            self._by_actor[(a, instant)].append(record)
        else:
            raise UnsupportedConstructError(f"Unknown effect node {type(effect).__name__} in {actor.name}")

    def _index_flow(self, a, actor, effect, conditions):
        if effect.op not in (AssignOp.INCREASE, AssignOp.DECREASE):
            raise UnsupportedConstructError(
                f"Continuous effect of {actor.name} must increase or decrease, got {effect.op.value}")
        if not _is_linear_in_time(effect.expr):
            raise UnsupportedConstructError(
                f"Continuous effect of {actor.name} on fluent {effect.fluent} is not of the form rate * #t")
        sign = 1 if effect.op is AssignOp.INCREASE else -1
        self._flows[effect.fluent].append(FlowRecord(a, effect.fluent, effect.expr, sign, conditions))

    def _instant(self, actor, when):
        if not actor.durative:
            return Instant.START
        if when is TimeSpec.AT_START:
            return Instant.START
        if when is TimeSpec.AT_END:
            return Instant.END
        if when is TimeSpec.CONTINUOUS:
            raise UnsupportedConstructError(f"Continuous literal effect in {actor.name}")
        raise UnsupportedConstructError(f"Untimed effect in durative action {actor.name}")

    def _check_literal(self, lit, actor):
        if not 0 <= lit < self.num_literals:
            raise IndexSpaceError(f"Effect of {actor.name} references literal {lit} outside [0, {self.num_literals})")

    def _check_fluent(self, f, actor):
        if not 0 <= f < self.num_fluents:
            raise IndexSpaceError(f"Effect of {actor.name} references fluent {f} outside [0, {self.num_fluents})")

    def _check_combined_assignments(self, a, actor):
        """Several assignments to one fluent at one happening must all be increases or decreases."""
        for instant in Instant:
            for f, records in self.assignments_of(a, instant).items():
                if len(records) < 2:
                    continue
                ops = {r.node.op for r in records}
                if not ops <= {AssignOp.INCREASE, AssignOp.DECREASE}:
                    raise UnsupportedConstructError(
                        f"{actor.name} combines {', '.join(sorted(op.value for op in ops))} "
                        f"on fluent {f} at its {instant.value}")

    def _drop_overridden_deletes(self):
        # delete-then-add: an unconditional add beats a delete of the same
        # actor at the same instant
        for key, deleters in list(self._deleters.items()):
            adders = {r.actor for r in self._adders.get(key, ()) if not r.conditions}
            kept = [r for r in deleters if r.actor not in adders]
            if len(kept) == len(deleters):
                continue
            for r in deleters:
                if r.actor in adders:
                    self._by_actor[(r.actor, r.instant)].remove(r)
            if kept:
                self._deleters[key] = kept
            else:
                del self._deleters[key]

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def adders(self, lit, instant):
        return tuple(self._adders.get((lit, instant), ()))

    def deleters(self, lit, instant):
        return tuple(self._deleters.get((lit, instant), ()))

    def assigners(self, fluent, instant):
        return tuple(self._assigners.get((fluent, instant), ()))

    def flows(self, fluent):
        return tuple(self._flows.get(fluent, ()))

    def effects_of(self, actor, instant):
        return tuple(self._by_actor.get((actor, instant), ()))

    def assignments_of(self, actor, instant):
        """!
        The discrete numeric effects of one actor at one instant.

        @returns: dict fluent -> tuple of EffectRecords, in effect order
        """
        grouped = defaultdict(list)
        for record in self.effects_of(actor, instant):
            if record.kind is EffectKind.ASSIGN:
                grouped[record.target].append(record)
        return {f: tuple(records) for f, records in grouped.items()}

    def touches_literal(self, lit):
        return any((lit, i) in self._adders or (lit, i) in self._deleters for i in Instant)

    def touches_fluent(self, fluent):
        """True when some happening assigns the fluent. Flows are not counted."""
        return any((fluent, i) in self._assigners for i in Instant)

import logging

import z3

from pysmtplan.encoders.utilities import str_repr
from pysmtplan.exceptions import HorizonLimitError, IndexSpaceError

logger = logging.getLogger(__name__)


class VariableAllocator:
    """!
    Creates and caches the z3 variables of the encoding, layer by layer.

    The variables live in lists indexed first by entity and then by layer,
    e.g. ``pre_literal_vars[lit][h]``. Allocation is append-only: growing the
    horizon only creates the missing layers, and variables handed out for
    earlier layers stay valid.
    """

    def __init__(self, ctx, literal_names, fluent_names, action_names, max_horizon, effect_index=None):
        self.ctx = ctx
        self.literal_names = list(literal_names)
        self.fluent_names = list(fluent_names)
        self.action_names = list(action_names)
        self.max_horizon = max_horizon

        if effect_index is not None:
            expected = (effect_index.num_literals, effect_index.num_fluents, effect_index.num_actions)
            actual = (len(self.literal_names), len(self.fluent_names), len(self.action_names))
            if expected != actual:
                raise IndexSpaceError(
                    f"Index space sizes (literals, fluents, actions) {actual} "
                    f"do not match the effect index {expected}")

        # layer variables
        self.time_vars = []
        self.duration_vars = []

        # state variables, [entity][layer]
        self.pre_literal_vars = [[] for _ in self.literal_names]
        self.pos_literal_vars = [[] for _ in self.literal_names]
        self.pre_function_vars = [[] for _ in self.fluent_names]
        self.pos_function_vars = [[] for _ in self.fluent_names]

        # action variables, [action][layer]
        self.sta_action_vars = [[] for _ in self.action_names]
        self.end_action_vars = [[] for _ in self.action_names]
        self.run_action_vars = [[] for _ in self.action_names]
        self.dur_action_vars = [[] for _ in self.action_names]
        self.stt_action_vars = [[] for _ in self.action_names]

    def __len__(self):
        """Number of layers allocated so far."""
        return len(self.time_vars)

    @property
    def last_layer(self):
        return len(self.time_vars) - 1

    def allocate(self, horizon):
        """!
        Makes sure variables exist for every layer 0..horizon.

        @param horizon: the last layer needed
        @returns: the list of newly allocated layers
        """
        if horizon < 0:
            raise IndexSpaceError(f"Horizon must be non-negative, got {horizon}")
        if horizon > self.max_horizon:
            raise HorizonLimitError(horizon, self.max_horizon)

        new_layers = list(range(len(self.time_vars), horizon + 1))
        for h in new_layers:
            self._create_layer(h)
        if new_layers:
            logger.debug("Allocated layers %d..%d", new_layers[0], new_layers[-1])
        return new_layers

    def _create_layer(self, h):
        ctx = self.ctx
        self.time_vars.append(z3.Real(f"t_{h}", ctx=ctx))
        self.duration_vars.append(z3.Real(f"d_{h}", ctx=ctx))

        for i, name in enumerate(self.literal_names):
            self.pre_literal_vars[i].append(z3.Bool(str_repr(f"{i}_{name}", h, "pre"), ctx=ctx))
            self.pos_literal_vars[i].append(z3.Bool(str_repr(f"{i}_{name}", h, "pos"), ctx=ctx))

        for i, name in enumerate(self.fluent_names):
            self.pre_function_vars[i].append(z3.Real(str_repr(f"{i}_{name}", h, "pre"), ctx=ctx))
            self.pos_function_vars[i].append(z3.Real(str_repr(f"{i}_{name}", h, "pos"), ctx=ctx))

        for i, name in enumerate(self.action_names):
            self.sta_action_vars[i].append(z3.Bool(str_repr(f"{i}_{name}", h, "sta"), ctx=ctx))
            self.end_action_vars[i].append(z3.Bool(str_repr(f"{i}_{name}", h, "end"), ctx=ctx))
            self.run_action_vars[i].append(z3.Bool(str_repr(f"{i}_{name}", h, "run"), ctx=ctx))
            self.dur_action_vars[i].append(z3.Real(str_repr(f"{i}_{name}", h, "dur"), ctx=ctx))
            self.stt_action_vars[i].append(z3.Real(str_repr(f"{i}_{name}", h, "stt"), ctx=ctx))

    # ------------------------------------------------------------------
    # lookup
    # ------------------------------------------------------------------

    def _lookup(self, table, kind, index, h):
        if not 0 <= index < len(table):
            raise IndexSpaceError(f"{kind} index {index} outside [0, {len(table)})")
        if not 0 <= h < len(self.time_vars):
            raise IndexSpaceError(f"Layer {h} has not been allocated (allocated: {len(self.time_vars)})")
        return table[index][h]

    def time(self, h):
        if not 0 <= h < len(self.time_vars):
            raise IndexSpaceError(f"Layer {h} has not been allocated (allocated: {len(self.time_vars)})")
        return self.time_vars[h]

    def layer_duration(self, h):
        if not 0 <= h < len(self.duration_vars):
            raise IndexSpaceError(f"Layer {h} has not been allocated (allocated: {len(self.duration_vars)})")
        return self.duration_vars[h]

    def literal(self, lit, h, post=False):
        table = self.pos_literal_vars if post else self.pre_literal_vars
        return self._lookup(table, "Literal", lit, h)

    def fluent(self, f, h, post=False):
        table = self.pos_function_vars if post else self.pre_function_vars
        return self._lookup(table, "Fluent", f, h)

    def start(self, a, h):
        return self._lookup(self.sta_action_vars, "Action", a, h)

    def end(self, a, h):
        return self._lookup(self.end_action_vars, "Action", a, h)

    def running(self, a, h):
        return self._lookup(self.run_action_vars, "Action", a, h)

    def duration(self, a, h):
        return self._lookup(self.dur_action_vars, "Action", a, h)

    def start_time(self, a, h):
        """Start time of the occurrence of action a running at layer h."""
        return self._lookup(self.stt_action_vars, "Action", a, h)

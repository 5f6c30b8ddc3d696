from pysmtplan.planner.plan.smt_temporal_plan import Happening, SMTTemporalPlan

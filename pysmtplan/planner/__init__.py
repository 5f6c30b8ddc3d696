from pysmtplan.planner.session import SolverSession, SolveResult

from pysmtplan.task.task import GroundAction, GroundTask, TimedInitialLiteral

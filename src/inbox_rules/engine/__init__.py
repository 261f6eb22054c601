"""Plan execution and the end-to-end rule pipeline."""

from inbox_rules.engine.models import (
    ActionOutcome,
    ExecutedRule,
    OutcomeStatus,
    PipelineResult,
    PlannedAction,
    PlanStatus,
    TestResult,
    outcome_summary,
)
from inbox_rules.engine.executor import ExecutionEngine
from inbox_rules.engine.pipeline import RulePipeline

__all__ = [
    "ActionOutcome",
    "ExecutedRule",
    "ExecutionEngine",
    "OutcomeStatus",
    "PipelineResult",
    "PlanStatus",
    "PlannedAction",
    "RulePipeline",
    "TestResult",
    "outcome_summary",
]

"""Orchestrator module for stack planning and execution."""

from astra_stack.orchestrator.planner import ExecutionPlan, ExecutionPlanner, Step
from astra_stack.orchestrator.outcomes import (
    ALLOWED_TRANSITIONS,
    DeploymentOutcome,
    OutcomeTable,
    RunState,
    StackResult,
    StackResultKind,
    StopReport,
    Transition
)
from astra_stack.orchestrator.executor import ProgressCallback, StackExecutor
from astra_stack.orchestrator.orchestrator import StackOrchestrator

__all__ = [
    # Planning
    'ExecutionPlan',
    'ExecutionPlanner',
    'Step',

    # Outcomes
    'ALLOWED_TRANSITIONS',
    'DeploymentOutcome',
    'OutcomeTable',
    'RunState',
    'StackResult',
    'StackResultKind',
    'StopReport',
    'Transition',

    # Execution
    'ProgressCallback',
    'StackExecutor',

    # Main orchestrator
    'StackOrchestrator',
]

"""Core execution engine for abilities."""

from abilities.core.context import ContextInjector, matches_trigger
from abilities.core.enforcement import EnforcementGate, GateDecision
from abilities.core.errors import (
    AbilityError,
    DefinitionError,
    EnforcementError,
    InputError,
    LifecycleError,
    StepExecutionError,
)
from abilities.core.execution import (
    AbilityExecution,
    ExecutionStatus,
    ExecutorContext,
    StepResult,
    StepStatus,
)
from abilities.core.executor import (
    StepExecutor,
    create_execution,
    execute_ability,
    require_valid_inputs,
    run_execution,
)
from abilities.core.interpolation import evaluate_condition, interpolate
from abilities.core.manager import ExecutionManager
from abilities.core.prompts import format_execution_result, format_plan
from abilities.core.resolver import order_steps

__all__ = [
    "AbilityError",
    "AbilityExecution",
    "ContextInjector",
    "DefinitionError",
    "EnforcementError",
    "EnforcementGate",
    "ExecutionManager",
    "ExecutionStatus",
    "ExecutorContext",
    "GateDecision",
    "InputError",
    "LifecycleError",
    "StepExecutionError",
    "StepExecutor",
    "StepResult",
    "StepStatus",
    "create_execution",
    "evaluate_condition",
    "execute_ability",
    "format_execution_result",
    "format_plan",
    "interpolate",
    "matches_trigger",
    "order_steps",
    "require_valid_inputs",
    "run_execution",
]

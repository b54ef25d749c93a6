"""Task orchestration engine.

Public surface for task producers and front ends: build ``Task`` records
(directly, with ``TaskBuilder`` or as ``TaskGroup``s), hand them to
``TaskOrchestrator.from_tasks`` or ``run_tasks`` and inspect the returned
``WorkflowResult``.
"""

from .builder import TaskBuilder
from .context import ExecutionContext, new_execution_id
from .executor import TaskExecutor
from .features import FeatureFlag, FeatureManager, validate_feature_name
from .graph import (
    GraphStatistics,
    GraphValidation,
    TaskGraph,
    TaskRegistry,
    check_task_set,
    graph_statistics,
    is_cycle_error,
    task_graph_to_mermaid,
    topological_order,
    validate_task_graph,
)
from .groups import TaskGroup, expand_task_group, namespaced_id
from .options import OrchestratorOptions, options_from_config, validate_options
from .orchestrator import OrchestratorState, TaskOrchestrator, failed_result, run_tasks
from .result import WorkflowResult
from .rollback import (
    ROLLBACK_STRATEGIES,
    CompensationTask,
    RollbackConfig,
    RollbackEntry,
    RollbackManager,
    RollbackResult,
    RollbackStrategy,
)
from .services import (
    LazyService,
    ResolvedServices,
    ServiceDefinition,
    ServiceFactoryContext,
    ServiceLocator,
    ServiceUnavailableError,
)
from .strategy import ExecutionStrategy
from .task import SkipCondition, Task

__all__ = [
    # context
    "ExecutionContext",
    "new_execution_id",
    # services
    "LazyService",
    "ResolvedServices",
    "ServiceDefinition",
    "ServiceFactoryContext",
    "ServiceLocator",
    "ServiceUnavailableError",
    # features
    "FeatureFlag",
    "FeatureManager",
    "validate_feature_name",
    # tasks
    "SkipCondition",
    "Task",
    "TaskBuilder",
    "TaskGroup",
    "expand_task_group",
    "namespaced_id",
    # graph
    "GraphStatistics",
    "GraphValidation",
    "TaskGraph",
    "TaskRegistry",
    "check_task_set",
    "graph_statistics",
    "is_cycle_error",
    "task_graph_to_mermaid",
    "topological_order",
    "validate_task_graph",
    # rollback
    "ROLLBACK_STRATEGIES",
    "CompensationTask",
    "RollbackConfig",
    "RollbackEntry",
    "RollbackManager",
    "RollbackResult",
    "RollbackStrategy",
    # execution
    "ExecutionStrategy",
    "OrchestratorOptions",
    "OrchestratorState",
    "TaskExecutor",
    "TaskOrchestrator",
    "WorkflowResult",
    "failed_result",
    "options_from_config",
    "run_tasks",
    "validate_options",
]

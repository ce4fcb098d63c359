"""Reconciliation package: traversal strategies, diffing, soft delete and orchestration."""
from reconciliation.diff import DIFF_FIELD_LIMIT, diff_documents
from reconciliation.entities import ENTITIES, ENTITY_BY_NAME, EntitySpec
from reconciliation.governor import FullRefreshGovernor, RefreshDecision
from reconciliation.orchestrator import SyncOrchestrator, build_orchestrator
from reconciliation.soft_delete import SoftDeleteReconciler
from reconciliation.strategies import (
    EntityFetchError,
    EntityOutcome,
    FullTraversalStrategy,
    IncrementalMaxStrategy,
    RunContext,
    SyncCancelled,
    SyncOptions,
    WrapTraversalStrategy,
)
from reconciliation.summary import RunSummary, SummaryRecorder

__all__ = [
    'DIFF_FIELD_LIMIT',
    'diff_documents',
    'ENTITIES',
    'ENTITY_BY_NAME',
    'EntitySpec',
    'FullRefreshGovernor',
    'RefreshDecision',
    'SyncOrchestrator',
    'build_orchestrator',
    'SoftDeleteReconciler',
    'EntityFetchError',
    'EntityOutcome',
    'FullTraversalStrategy',
    'IncrementalMaxStrategy',
    'RunContext',
    'SyncCancelled',
    'SyncOptions',
    'WrapTraversalStrategy',
    'RunSummary',
    'SummaryRecorder',
]

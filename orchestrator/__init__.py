"""
Orchestrator package for coordinating the content store migration.

Package Structure:
- migration_orchestrator: per-store batch driver running the workflow phases
- migration_report: console and JSON run report

Key Features:
- Extract, merge, flatten, generate and upload phases over a store batch
- Errors stay within their store, authentication errors abort the run
- Succeeded, skipped and failed counts for every phase
"""

from .migration_orchestrator import MigrationOrchestrator, PHASES, WORKFLOW_PHASES, RoundTripError
from .migration_report import MigrationReport

__all__ = [
    'MigrationOrchestrator',
    'MigrationReport',
    'PHASES',
    'WORKFLOW_PHASES',
    'RoundTripError'
]

"""
Migration report for a content store run.

The orchestrator hands over its per-store results and phase counters; this
module folds them into one report dictionary, renders the console summary
and writes the JSON copy next to the run's data.
"""

import json
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from logger import format_elapsed
from models import UploadResult

PHASE_LABELS = {
    'extract': 'Extract',
    'merge': 'Merge',
    'flatten': 'Flatten',
    'generate': 'Generate',
    'upload': 'Upload',
    'preview': 'Preview',
    'publish': 'Publish',
}

RULE = "=" * 60
THIN_RULE = "-" * 60


class MigrationReport:
    """Builds, renders and exports the report of one migration run."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('content_store_migrator.orchestrator.migration_report')

    def generate_report(
        self,
        store_results: List[Dict[str, Any]],
        phase_stats: Dict[str, Any],
        migration_duration: float,
        workflow: str,
        fetch_stats: Optional[Dict[str, Any]] = None,
        upload_result: Optional[UploadResult] = None,
        fatal_error: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Assemble the report dictionary.

        Args:
            store_results: Per-store status dictionaries
            phase_stats: Counters and errors keyed by phase name
            migration_duration: Wall time of the run in seconds
            workflow: Workflow that was run
            fetch_stats: Per-store fetcher and cache statistics
            upload_result: Outcome of the upload batch, if one ran
            fatal_error: Message of the error that aborted the run

        Returns:
            Report with summary, phases, stores, fetch, upload, uploads,
            errors and timestamp keys
        """
        errors = [
            dict(error, phase=phase)
            for phase, stats in phase_stats.items()
            for error in stats.get('errors', [])
        ]
        failed = sum(1 for store in store_results if store['status'] == 'failed')
        total = len(store_results)

        report = {
            'summary': {
                'workflow': workflow,
                'stores': total,
                'main_stores': sum(1 for store in store_results if store['is_main']),
                'stores_failed': failed,
                'success_rate': (total - failed) / total if total else 0.0,
                'total_errors': len(errors),
                'duration_seconds': migration_duration,
                'duration_formatted': format_elapsed(migration_duration),
                'fatal_error': fatal_error,
                'success': fatal_error is None and not errors
            },
            # Errors are listed once, at the top level
            'phases': {
                phase: {key: stats.get(key, 0) for key in ('succeeded', 'skipped', 'failed')}
                for phase, stats in phase_stats.items()
            },
            'stores': store_results,
            'fetch': fetch_stats or {},
            'upload': upload_result.to_dict() if upload_result else None,
            'uploads': [task.to_dict() for task in upload_result.tasks] if upload_result else [],
            'errors': errors,
            'timestamp': datetime.now().isoformat()
        }
        self.logger.debug(f"Report built: {total} stores, {len(errors)} errors")
        return report

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """Render the report as the text block printed at the end of a run."""
        summary = report.get('summary', {})
        lines = [RULE, "MIGRATION REPORT", RULE, "", "Summary:"]
        lines.append(f"  Workflow:    {summary.get('workflow', 'unknown')}")
        lines.append(f"  Stores:      {summary.get('stores', 0)} ({summary.get('main_stores', 0)} main)")
        lines.append(f"  Failed:      {summary.get('stores_failed', 0)}")
        lines.append(f"  Duration:    {summary.get('duration_formatted', '0s')}")
        if summary.get('stores'):
            lines.append(f"  Success:     {summary.get('success_rate', 0) * 100:.1f}%")
        if summary.get('fatal_error'):
            lines.append(f"  ABORTED:     {summary['fatal_error']}")
        lines.append("")

        phases = report.get('phases', {})
        lines += ["Phase Breakdown:", THIN_RULE]
        lines.append(f"  {'Phase':<10} {'Succeeded':>10} {'Skipped':>10} {'Failed':>10}")
        for phase, label in PHASE_LABELS.items():
            if phase in phases:
                counts = phases[phase]
                lines.append(
                    f"  {label:<10} {counts['succeeded']:>10} {counts['skipped']:>10} {counts['failed']:>10}"
                )
        lines.append("")

        dry_run = [upload['target_path'] for upload in report.get('uploads', []) if upload.get('would_upload')]
        if dry_run:
            lines += [f"Dry Run ({len(dry_run)} files would be uploaded):", THIN_RULE]
            lines += [f"  {path}" for path in dry_run]
            lines.append("")

        failed_stores = [store for store in report.get('stores', []) if store.get('status') == 'failed']
        if failed_stores:
            lines += ["Failed Stores:", THIN_RULE]
            for store in failed_stores:
                lines.append(f"  {store['name']} ({store['path']})")
                lines += [f"    {error}" for error in store.get('errors', [])]
            lines.append("")

        errors = report.get('errors', [])
        if errors:
            lines += ["Error Summary:", f"  Total errors: {len(errors)}"]
            by_phase = Counter(error.get('phase', 'unknown') for error in errors)
            lines += [f"  {phase}: {count} errors" for phase, count in sorted(by_phase.items())]
            lines.append("")

        lines.append(RULE)
        return "\n".join(lines)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """Write the report as indented UTF-8 JSON; failures are logged, not raised."""
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {e}")
            return
        self.logger.info(f"JSON report exported to {filepath}")


__all__ = ['MigrationReport', 'PHASE_LABELS']

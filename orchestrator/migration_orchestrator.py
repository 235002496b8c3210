"""
Migration orchestrator for coordinating the content store pipeline.

This module provides the central coordinator that sequences all migration phases:
Extract → Merge → Flatten → Generate → Upload (→ Preview → Publish) → Report.
Stores are processed one at a time, each with its own cache and output folder.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from converters import anchor, flatten, links_to, merge, rows_from_sheet, synthesize, unflatten
from exporters import HierarchyExporter, LinkRewriter
from fetchers import FetcherFactory, FetcherError, JcrClient, SourceAuthError, write_manifest
from importers import DaAdminClient, DaAuthError, TargetPaths, UploadOptions, UploadPipeline, build_store_tasks
from logger import log_section
from models import ContentStore, HierarchyNode, UploadResult, classify_stores
from .migration_report import MigrationReport

PHASES = ('extract', 'merge', 'flatten', 'generate', 'upload', 'preview', 'publish')

WORKFLOW_PHASES = {
    'extract': ('extract',),
    'generate': ('merge', 'flatten', 'generate'),
    'upload': ('upload',),
    'full': ('extract', 'merge', 'flatten', 'generate', 'upload'),
}


class RoundTripError(ValueError):
    """Generated sheet rows do not rebuild the hierarchy they came from."""
    pass


class MigrationOrchestrator:
    """Central coordinator sequencing all migration phases for a batch of stores."""

    def __init__(
        self,
        config: Dict[str, Any],
        workflow: str = 'full',
        jcr_client: Optional[JcrClient] = None,
        da_client: Optional[DaAdminClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize migration orchestrator.

        Args:
            config: Validated configuration dictionary
            workflow: One of 'extract', 'generate', 'upload', 'full'
            jcr_client: Optional source client (created from config on first use)
            da_client: Optional target client (created from config on first use)
            sleep: Delay function used between upload retries
            logger: Optional logger instance
        """
        if workflow not in WORKFLOW_PHASES:
            raise ValueError(f"Invalid workflow: {workflow}. Must be one of {sorted(WORKFLOW_PHASES)}")

        self.config = config
        self.workflow = workflow
        self.logger = logger or logging.getLogger('content_store_migrator.orchestrator')
        self.jcr_client = jcr_client
        self.da_client = da_client
        self.sleep = sleep

        migration = config.get('migration', {})
        self.exporter = HierarchyExporter(migration.get('data_dir', './DATA'), self.logger)
        self.recursive = bool(migration.get('recursive', False))
        self.concurrency = int(migration.get('concurrency', 1))
        self.dest = config.get('target', {}).get('dest', '')

        self.phase_stats: Dict[str, Dict[str, Any]] = {}
        self.store_results: Dict[str, Dict[str, Any]] = {}
        self.fetch_stats: Dict[str, Any] = {}
        self.merged_subs: Dict[str, List[ContentStore]] = {}
        self.upload_result: Optional[UploadResult] = None
        self.fatal_error: Optional[str] = None

        self.logger.info(f"MigrationOrchestrator initialized with workflow: {self.workflow}")

    # ========================================================================
    # Entry points
    # ========================================================================

    def orchestrate_migration(self, store_paths: List[str]) -> Dict[str, Any]:
        """
        Run the configured workflow over a batch of stores.

        Args:
            store_paths: Source paths in manifest order

        Returns:
            Migration report dictionary
        """
        start_time = time.time()
        self.phase_stats = {phase: self._new_phase_stats() for phase in PHASES}
        stores = classify_stores(store_paths)
        for store in stores:
            self.store_results[store.name] = {
                'name': store.name,
                'path': store.path,
                'is_main': store.is_main,
                'status': 'ok',
                'errors': []
            }

        self.logger.info(
            f"Starting {self.workflow} workflow for {len(stores)} stores "
            f"({sum(1 for s in stores if s.is_main)} main)"
        )

        phases = WORKFLOW_PHASES[self.workflow]
        try:
            if 'extract' in phases:
                self._execute_extract(stores)
            if 'merge' in phases and not self.fatal_error:
                self._execute_merge(stores)
            if 'generate' in phases and not self.fatal_error:
                self._execute_generate(stores)
            if 'upload' in phases and not self.fatal_error:
                self._execute_upload(stores)
        except KeyboardInterrupt:
            self.logger.warning("Migration interrupted")
            raise

        duration = time.time() - start_time
        self.logger.info(f"Migration orchestration complete in {duration:.2f}s")
        return self._generate_report(stores, duration)

    def discover(self, store_path: str, manifest_out: Optional[str] = None) -> List[str]:
        """
        List a store and the content stores it links to, optionally writing a manifest.

        Raises:
            FetcherError: If the store page cannot be fetched
        """
        log_section("Store Discovery")
        store = ContentStore.from_path(store_path)
        fetcher = FetcherFactory.create_fetcher(self.config, store, self._source_client())
        paths = fetcher.discover_store_links(store)

        if manifest_out:
            write_manifest(manifest_out, paths, source=store.path)
        return paths

    # ========================================================================
    # Phases
    # ========================================================================

    def _execute_extract(self, stores: List[ContentStore]) -> None:
        log_section("Phase 1: Extract")
        stats = self.phase_stats['extract']

        for store in stores:
            try:
                fetcher = FetcherFactory.create_fetcher(self.config, store, self._source_client())
                tree = fetcher.fetch_tree(store, recursive=self.recursive)
                self.exporter.write_hierarchy(store.name, tree)
                fetcher.download_images(tree, str(self.exporter.images_dir(store.name)))
                self.fetch_stats[store.name] = fetcher.get_stats()
                stats['succeeded'] += 1
            except SourceAuthError as e:
                self._fail_store(store, 'extract', e)
                self.fatal_error = f"Source authentication failed: {e}"
                self.logger.error(f"{self.fatal_error}. Aborting run.")
                return
            except (FetcherError, OSError, ValueError) as e:
                self._fail_store(store, 'extract', e)
            except Exception as e:
                self.logger.exception(f"Unexpected error extracting {store.name}")
                self._fail_store(store, 'extract', e)

        self.logger.info(f"Extract complete: {stats['succeeded']} succeeded, {stats['failed']} failed")

    def _execute_merge(self, stores: List[ContentStore]) -> None:
        log_section("Phase 2: Merge")
        stats = self.phase_stats['merge']

        for main in stores:
            if not main.is_main or self._has_failed(main):
                continue
            try:
                host = self.exporter.read_hierarchy(main.name, main.title)
                subs = [
                    sub for sub in stores
                    if not sub.is_main and not self._has_failed(sub)
                    and (main.is_ancestor_of(sub) or links_to(host, sub.path))
                ]
                if not subs:
                    stats['skipped'] += 1
                    self.logger.info(f"No sub-stores to merge into {main.name}")
                    continue

                trees = [host] + [
                    anchor(self.exporter.read_hierarchy(sub.name, sub.title), host, sub.path)
                    for sub in subs
                ]
                merged = merge(trees)
                self.exporter.write_hierarchy(main.name, merged, merged=True)
                self.merged_subs[main.name] = subs
                stats['succeeded'] += 1
                self.logger.info(f"Merged {len(subs)} sub-stores into {main.name}")
            except (OSError, ValueError) as e:
                self._fail_store(main, 'merge', e)

    def _execute_generate(self, stores: List[ContentStore]) -> None:
        log_section("Phase 3: Flatten and Generate")
        rewriter = LinkRewriter.from_config(self.config)

        for store in stores:
            if self._has_failed(store):
                self.phase_stats['flatten']['skipped'] += 1
                self.phase_stats['generate']['skipped'] += 1
                continue

            try:
                tree = self._load_tree(store)
                rows = flatten(tree)
                self.phase_stats['flatten']['succeeded'] += 1
            except (OSError, ValueError) as e:
                self._fail_store(store, 'flatten', e)
                self.phase_stats['generate']['skipped'] += 1
                continue

            try:
                rows = rewriter.rewrite_rows(
                    rows, store.name, str(self.exporter.images_dir(store.name)),
                    merged_image_dirs={
                        sub.name: str(self.exporter.images_dir(sub.name))
                        for sub in self.merged_subs.get(store.name, [])
                    }
                )
                self.exporter.write_csv(store.name, rows)
                documents = synthesize(rows, store.name, store.is_main, title=store.title, dest=self.dest)
                self._verify_round_trip(rows, documents.sheet, store)
                self.exporter.write_documents(documents)
                self.phase_stats['generate']['succeeded'] += 1
            except (OSError, ValueError) as e:
                self._fail_store(store, 'generate', e)

    def _execute_upload(self, stores: List[ContentStore]) -> None:
        log_section("Phase 4: Upload")
        options = UploadOptions.from_config(self.config)
        paths = TargetPaths.from_config(self.config)

        tasks = []
        for store in stores:
            if self._has_failed(store):
                self.phase_stats['upload']['skipped'] += 1
                continue
            try:
                documents = self.exporter.generated_files(store.name)
            except FileNotFoundError as e:
                self._fail_store(store, 'upload', e)
                continue
            tasks.extend(build_store_tasks(
                paths, store.name, store.is_main, documents, self.exporter.image_files(store.name)
            ))

        if not tasks:
            self.logger.warning("Nothing to upload")
            return

        pipeline = UploadPipeline(
            self._target_client(),
            paths,
            sleep=self.sleep,
            show_progress=self.config.get('advanced', {}).get('progress_bars', True)
        )
        try:
            result = pipeline.upload(tasks, self.concurrency, options)
        except DaAuthError as e:
            self.fatal_error = f"Target authentication failed: {e}"
            self.logger.error(f"{self.fatal_error}. Aborting run.")
            self.phase_stats['upload']['errors'].append({'store': None, 'error': str(e)})
            self.phase_stats['upload']['failed'] += 1
            return

        self.upload_result = result
        self._record_upload(result, options)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _load_tree(self, store: ContentStore) -> HierarchyNode:
        if store.is_main and self.exporter.has_hierarchy(store.name, merged=True):
            return self.exporter.read_hierarchy(store.name, store.title, merged=True)
        return self.exporter.read_hierarchy(store.name, store.title)

    def _verify_round_trip(self, rows, sheet: Dict[str, Any], store: ContentStore) -> None:
        """Check that the sheet rebuilds a tree with the same (path, type, title) keys."""
        rebuilt = flatten(unflatten(rows_from_sheet(sheet, store.name), store.title))
        expected = [row.key for row in rows]
        actual = [row.key for row in rebuilt]
        if expected != actual:
            raise RoundTripError(
                f"Sheet for {store.name} does not round-trip: "
                f"{len(expected)} rows generated, {len(actual)} rebuilt"
            )

    def _record_upload(self, result: UploadResult, options: UploadOptions) -> None:
        upload = self.phase_stats['upload']
        upload['succeeded'] += result.succeeded
        upload['skipped'] += result.skipped
        upload['failed'] += result.failed

        documents = [task for task in result.tasks if task.kind.is_document]
        preview = self.phase_stats['preview']
        preview['succeeded'] += result.previewed
        preview['failed'] += result.preview_failed
        preview['skipped'] += len(documents) - result.previewed - result.preview_failed

        publish = self.phase_stats['publish']
        publish['succeeded'] += result.published
        publish['failed'] += result.publish_failed
        publish['skipped'] += len(documents) - result.published - result.publish_failed

        for task in result.tasks:
            if task.error:
                upload['errors'].append({'store': task.store_name, 'error': f"{task.target_path}: {task.error}"})
                if task.store_name in self.store_results:
                    self.store_results[task.store_name]['errors'].append(task.error)

    def _fail_store(self, store: ContentStore, phase: str, error: Exception) -> None:
        self.logger.error(f"{phase.capitalize()} failed for {store.name}: {error}")
        self.phase_stats[phase]['failed'] += 1
        self.phase_stats[phase]['errors'].append({'store': store.name, 'error': str(error)})
        result = self.store_results[store.name]
        result['status'] = 'failed'
        result['errors'].append(f"{phase}: {error}")

    def _has_failed(self, store: ContentStore) -> bool:
        return self.store_results[store.name]['status'] == 'failed'

    def _source_client(self) -> JcrClient:
        if self.jcr_client is None:
            self.jcr_client = JcrClient.from_config(self.config)
        return self.jcr_client

    def _target_client(self) -> DaAdminClient:
        if self.da_client is None:
            self.da_client = DaAdminClient.from_config(self.config)
        return self.da_client

    @staticmethod
    def _new_phase_stats() -> Dict[str, Any]:
        return {'succeeded': 0, 'skipped': 0, 'failed': 0, 'errors': []}

    def _generate_report(self, stores: List[ContentStore], duration: float) -> Dict[str, Any]:
        report_generator = MigrationReport(self.logger)
        return report_generator.generate_report(
            store_results=list(self.store_results.values()),
            phase_stats=self.phase_stats,
            migration_duration=duration,
            workflow=self.workflow,
            fetch_stats=self.fetch_stats,
            upload_result=self.upload_result,
            fatal_error=self.fatal_error
        )


__all__ = ['MigrationOrchestrator', 'PHASES', 'WORKFLOW_PHASES', 'RoundTripError']

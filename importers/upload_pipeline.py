"""
Upload pipeline pushing generated documents and images to the target store.

Tasks are drained from a shared queue by a bounded pool of workers. Each
task moves through an explicit state machine (see ``UploadState``); document
tasks additionally go through preview and publish.
"""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from tqdm import tqdm

from logger import ProgressCounter
from models import UploadKind, UploadResult, UploadState, UploadTask
from .da_client import DaAdminClient, DaApiError, DaAuthError, TargetPaths

logger = logging.getLogger('content_store_migrator.importers.upload_pipeline')


@dataclass
class UploadOptions:
    """Per-run switches of the upload pipeline."""

    preview: bool = False
    publish: bool = False
    reup: bool = False
    dry_run: bool = False
    max_retries: int = 3
    backoff_factor: float = 2.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'UploadOptions':
        migration = config.get('migration', {})
        advanced = config.get('advanced', {})
        return cls(
            preview=bool(migration.get('preview', False)),
            publish=bool(migration.get('publish', False)),
            reup=bool(migration.get('reup', False)),
            dry_run=bool(migration.get('dry_run', False)),
            max_retries=int(advanced.get('max_retries', 3)),
            backoff_factor=float(advanced.get('retry_backoff_factor', 2.0))
        )


def is_transient(error: Exception) -> bool:
    """Connection errors, timeouts and HTTP 429/5xx are worth retrying."""
    if isinstance(error, DaAuthError):
        return False
    if isinstance(error, DaApiError):
        return error.transient
    return isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout))


def build_store_tasks(
    paths: TargetPaths,
    store_name: str,
    is_main_store: bool,
    documents: Dict[str, Path],
    images: Optional[List[Path]] = None
) -> List[UploadTask]:
    """
    Create the upload tasks of one store.

    Images come first so that pages never reference a missing image, then
    the sheet, then the page that embeds it.

    Args:
        paths: Target path rules
        store_name: Store directory name
        is_main_store: Whether documents go to the destination root
        documents: Dict with 'sheet' and 'page' file paths
        images: Downloaded image files

    Returns:
        Ordered task list
    """
    tasks = [
        UploadTask(
            target_path=paths.image_path(store_name, image.name),
            kind=UploadKind.IMAGE,
            local_path=str(image),
            store_name=store_name
        )
        for image in images or []
    ]
    for key, kind in (('sheet', UploadKind.JSON_SHEET), ('page', UploadKind.HTML_PAGE)):
        document = Path(documents[key])
        tasks.append(UploadTask(
            target_path=paths.document_path(document.name, is_main_store),
            kind=kind,
            local_path=str(document),
            store_name=store_name
        ))
    return tasks


class UploadPipeline:
    """
    Uploads tasks with bounded concurrency, retry and preview/publish.

    This pipeline:
    1. Skips resources that already exist (unless re-upload is forced)
    2. Retries transient failures with exponential backoff
    3. Previews and publishes uploaded or already-present documents
    4. Stops taking new tasks when the target rejects the credential
    """

    def __init__(
        self,
        client: DaAdminClient,
        paths: TargetPaths,
        sleep: Callable[[float], None] = time.sleep,
        show_progress: bool = False
    ):
        """
        Initialize the upload pipeline.

        Args:
            client: Target store client
            paths: Target path rules (for preview/publish paths)
            sleep: Delay function used between retries
            show_progress: Show a tqdm progress bar
        """
        self.client = client
        self.paths = paths
        self.sleep = sleep
        self.show_progress = show_progress
        self._lock = threading.Lock()

    def upload(
        self,
        tasks: List[UploadTask],
        concurrency: int = 1,
        options: Optional[UploadOptions] = None
    ) -> UploadResult:
        """
        Upload a batch of tasks.

        Args:
            tasks: Tasks to process, each taken exactly once
            concurrency: Number of worker loops
            options: Run switches (defaults to upload-only)

        Returns:
            UploadResult with counts and the processed tasks

        Raises:
            DaAuthError: If the target rejects the credential
        """
        options = options or UploadOptions()
        result = UploadResult(tasks=list(tasks))
        if not tasks:
            return result

        work: 'queue.Queue[UploadTask]' = queue.Queue()
        for task in tasks:
            task.transition(UploadState.PENDING)
            work.put(task)

        stop = threading.Event()
        workers = max(1, min(concurrency, len(tasks)))
        mode = 'dry run' if options.dry_run else ('re-upload' if options.reup else 'upload')
        logger.info(f"Uploading {len(tasks)} files with {workers} workers ({mode})")

        progress_bar = None
        if self.show_progress:
            progress_bar = tqdm(total=len(tasks), desc="Uploading", unit="file")

        try:
            with ProgressCounter(len(tasks), item_type='uploads') as tracker:
                with ThreadPoolExecutor(max_workers=workers) as executor:
                    futures = [
                        executor.submit(self._worker, work, options, stop, tracker, progress_bar)
                        for _ in range(workers)
                    ]
                errors = [future.exception() for future in futures if future.exception()]
        finally:
            if progress_bar is not None:
                progress_bar.close()

        if errors:
            raise errors[0]

        self._tally(result)
        logger.info(
            f"Upload finished: {result.succeeded} uploaded, {result.skipped} skipped, "
            f"{result.failed} failed"
        )
        return result

    def _worker(self, work: queue.Queue, options: UploadOptions, stop: threading.Event,
                tracker: ProgressCounter, progress_bar) -> None:
        while not stop.is_set():
            try:
                task = work.get_nowait()
            except queue.Empty:
                return

            try:
                self._process(task, options)
            except DaAuthError as e:
                task.error = str(e)
                task.transition(UploadState.FAILED)
                stop.set()
                logger.error(f"Target rejected credentials, stopping uploads: {e}")
                raise
            finally:
                with self._lock:
                    tracker.record(task.upload_state.value if task.upload_state else 'failed')
                    if progress_bar is not None:
                        progress_bar.update(1)

    def _process(self, task: UploadTask, options: UploadOptions) -> None:
        if options.dry_run:
            self._simulate(task, options)
            return

        if not self._upload(task, options):
            return
        if task.kind.is_document:
            self._preview_and_publish(task, options)

    def _simulate(self, task: UploadTask, options: UploadOptions) -> None:
        """
        Trace what a real run would do, without any request.

        The existence check is a request too, so a dry run cannot tell an
        upload from a skip: every task goes PENDING -> SKIPPED with
        ``would_upload`` set. Documents then record the preview and publish
        states a real run would request.
        """
        task.would_upload = True
        task.transition(UploadState.SKIPPED)
        if task.kind.is_document:
            if options.preview:
                task.transition(UploadState.PREVIEW_REQUESTED)
                task.transition(UploadState.PREVIEW_DONE)
            if options.publish:
                task.transition(UploadState.PUBLISH_REQUESTED)
                task.transition(UploadState.PUBLISH_DONE)
        logger.info(f"[DRY RUN] Would upload {task.kind.value}: {task.target_path}")

    def _upload(self, task: UploadTask, options: UploadOptions) -> bool:
        """Run the existence check and upload. Returns False if the task failed."""
        try:
            if not options.reup:
                task.transition(UploadState.EXISTENCE_CHECK)
                exists = self._with_retry(
                    lambda: self.client.exists(task.target_path, task.kind),
                    f"existence check of {task.target_path}", options
                )
                if exists:
                    task.transition(UploadState.SKIPPED)
                    logger.debug(f"Already present, skipping upload: {task.target_path}")
                    return True

            task.transition(UploadState.UPLOADING)
            content = task.read_content()
            self._with_retry(
                lambda: self.client.put(task.target_path, content, task.file_name),
                f"upload of {task.target_path}", options
            )
        except DaAuthError:
            raise
        except (DaApiError, requests.exceptions.RequestException, OSError, ValueError) as e:
            task.error = str(e)
            task.transition(UploadState.FAILED)
            logger.error(f"Failed to upload {task.target_path}: {e}")
            return False

        task.transition(UploadState.UPLOADED)
        logger.debug(f"Uploaded {task.target_path}")
        return True

    def _preview_and_publish(self, task: UploadTask, options: UploadOptions) -> None:
        live_path = self.paths.live_path(task.target_path, task.kind)

        if options.preview:
            task.transition(UploadState.PREVIEW_REQUESTED)
            task.preview_ok = self._live_action(
                task, lambda: self.client.preview(live_path), f"preview of {live_path}", options
            )
            if task.preview_ok:
                task.transition(UploadState.PREVIEW_DONE)

        if options.publish:
            if options.preview and not task.preview_ok:
                task.publish_ok = False
                logger.warning(f"Not publishing {live_path}: preview did not succeed")
                return
            task.transition(UploadState.PUBLISH_REQUESTED)
            task.publish_ok = self._live_action(
                task, lambda: self.client.publish(live_path), f"publish of {live_path}", options
            )
            if task.publish_ok:
                task.transition(UploadState.PUBLISH_DONE)

    def _live_action(self, task: UploadTask, operation: Callable[[], Any], description: str,
                     options: UploadOptions) -> bool:
        try:
            self._with_retry(operation, description, options)
        except DaAuthError:
            raise
        except (DaApiError, requests.exceptions.RequestException) as e:
            task.error = str(e)
            logger.error(f"Failed {description}: {e}")
            return False
        return True

    def _with_retry(self, operation: Callable[[], Any], description: str, options: UploadOptions) -> Any:
        """Run ``operation``, retrying transient errors with exponential backoff."""
        attempt = 0
        while True:
            try:
                return operation()
            except Exception as e:
                if not is_transient(e) or attempt >= options.max_retries:
                    raise
                attempt += 1
                delay = options.backoff_factor * 2 ** (attempt - 1)
                logger.warning(
                    f"Transient error during {description} (attempt {attempt}/{options.max_retries}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self.sleep(delay)

    @staticmethod
    def _tally(result: UploadResult) -> None:
        for task in result.tasks:
            if task.upload_state == UploadState.UPLOADED:
                result.succeeded += 1
            elif task.upload_state == UploadState.SKIPPED:
                result.skipped += 1
            elif task.upload_state == UploadState.FAILED:
                result.failed += 1

            if task.preview_ok is True:
                result.previewed += 1
            elif task.preview_ok is False:
                result.preview_failed += 1

            if task.publish_ok is True:
                result.published += 1
            elif task.publish_ok is False:
                result.publish_failed += 1


__all__ = ['UploadPipeline', 'UploadOptions', 'build_store_tasks', 'is_transient']

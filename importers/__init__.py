"""Import package pushing generated content into the target document store.

Package Structure:
- da_client: DA admin source API and preview/live API client
- upload_pipeline: bounded worker pool with retry and preview/publish

Key Features:
- Idempotent uploads (existing resources are skipped unless re-upload is forced)
- Retry with exponential backoff for transient failures
- Preview and publish of uploaded documents
- Dry-run mode that traces what would be uploaded without any request

Configuration Referenced:
- target.*: organization, repository, branch, destination and token
- migration.*: preview, publish, reup, dry_run and concurrency switches
- advanced.*: timeouts, retries and rate limiting
"""

from .da_client import DaAdminClient, DaApiError, DaAuthError, TargetPaths
from .upload_pipeline import UploadOptions, UploadPipeline, build_store_tasks

__all__ = [
    'DaAdminClient',
    'DaApiError',
    'DaAuthError',
    'TargetPaths',
    'UploadPipeline',
    'UploadOptions',
    'build_store_tasks'
]

"""Object storage for uploaded source media."""

from __future__ import annotations

import os
import re
from urllib.parse import urlparse, urlunparse

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.jobs.errors import PipelineError
from app.services.collaborators import StoredFile
from app.utils.ids import generate_object_suffix

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def build_object_key(owner_id: str, file_name: str) -> str:
  """Return a per-owner object key that never collides between uploads."""
  safe_name = _UNSAFE_NAME_RE.sub("_", file_name).strip("._") or "upload"
  return f"uploads/{owner_id}/{generate_object_suffix()}-{safe_name[:80]}"


class StorageClient:
  """Thin wrapper over GCS and emulator access for uploaded media."""

  def __init__(self, settings: Settings, *, client: storage.Client | None = None) -> None:
    self._bucket_name = settings.storage_bucket
    self._storage_host = settings.gcs_storage_host
    if client is not None:
      self._client = client
    # Ensure emulator endpoint is visible to the SDK in local development.
    elif self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing; only in emulator mode."""
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def store_file(self, owner_id: str, data: bytes, content_type: str, file_name: str) -> StoredFile:
    key = build_object_key(owner_id, file_name)
    blob = self._client.bucket(self._bucket_name).blob(key)
    blob.content_type = content_type
    try:
      await run_in_threadpool(blob.upload_from_string, data, content_type)
    except GoogleAPIError as exc:
      raise PipelineError(f"Failed to store uploaded file '{file_name}'.") from exc
    return StoredFile(key=key, public_url=blob.public_url)

  async def delete_file(self, owner_id: str, key: str) -> None:
    if not key.startswith(f"uploads/{owner_id}/"):
      raise PipelineError("Refusing to delete an object outside the owner's prefix.")
    blob = self._client.bucket(self._bucket_name).blob(key)
    try:
      await run_in_threadpool(blob.delete)
    except NotFound:
      return
    except GoogleAPIError as exc:
      raise PipelineError(f"Failed to delete stored object '{key}'.") from exc


def build_storage_client(settings: Settings) -> StorageClient:
  """Create a storage client instance with environment-aware credentials."""
  return StorageClient(settings)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")

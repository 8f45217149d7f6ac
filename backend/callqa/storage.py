"""Audio blob storage (local disk or S3) and recording download."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import asyncio
import logging
import os

import boto3
import httpx

logger = logging.getLogger(__name__)

AUDIO_PREFIX = "audio"


class FileStorage:
    """Stores audio blobs under a storage-relative reference such as ``audio/call_1.mp3``."""

    def save(self, name: str, data: bytes) -> str:
        raise NotImplementedError

    def read(self, reference: str) -> bytes:
        raise NotImplementedError

    def delete(self, reference: str) -> bool:
        """Remove the blob; returns False when it did not exist."""
        raise NotImplementedError

    def exists(self, reference: str) -> bool:
        raise NotImplementedError


class LocalFileStorage(FileStorage):
    def __init__(self, root: str):
        self.root = Path(root)

    def _path(self, reference: str) -> Path:
        path = (self.root / reference.lstrip("/")).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Audio reference escapes the upload directory: {reference}")
        return path

    def save(self, name: str, data: bytes) -> str:
        reference = f"{AUDIO_PREFIX}/{name}"
        path = self._path(reference)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return reference

    def read(self, reference: str) -> bytes:
        return self._path(reference).read_bytes()

    def delete(self, reference: str) -> bool:
        path = self._path(reference)
        if not path.exists():
            return False
        path.unlink()
        return True

    def exists(self, reference: str) -> bool:
        return self._path(reference).exists()


class S3FileStorage(FileStorage):
    def __init__(self, bucket: str, region: str, client=None):
        self.bucket = bucket
        self.s3_client = client or boto3.client('s3', region_name=region)

    def save(self, name: str, data: bytes) -> str:
        key = f"{AUDIO_PREFIX}/{name}"
        self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType='audio/mpeg')
        return key

    def read(self, reference: str) -> bytes:
        obj = self.s3_client.get_object(Bucket=self.bucket, Key=reference)
        return obj['Body'].read()

    def delete(self, reference: str) -> bool:
        self.s3_client.delete_object(Bucket=self.bucket, Key=reference)
        return True

    def exists(self, reference: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=reference)
            return True
        except self.s3_client.exceptions.ClientError:
            return False


async def download_audio(
    audio_url: str,
    call_id: int,
    storage: FileStorage,
    timeout_seconds: float = 60.0,
) -> Optional[str]:
    """Fetch a recording and store it; returns the storage reference, or None on any failure."""
    try:
        ext = os.path.splitext(httpx.URL(audio_url).path)[1].lower() or ".mp3"
        filename = f"call_{call_id}_{int(datetime.now(timezone.utc).timestamp())}{ext}"
        async with httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True) as client:
            response = await client.get(audio_url)
            response.raise_for_status()
        reference = await asyncio.to_thread(storage.save, filename, response.content)
        logger.info(f"Downloaded audio for call {call_id} to {reference} ({len(response.content)} bytes)")
        return reference
    except Exception as e:
        logger.error(f"Error downloading audio for call {call_id} from {audio_url}: {e}")
        return None

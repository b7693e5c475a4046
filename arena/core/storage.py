import logging

from arena.core.client import get_supabase_client
from arena.core.config import settings
from arena.core.errors import StorageError

logger = logging.getLogger(__name__)


class SupabaseBlobStore:
    """Blob store over one Supabase Storage bucket.

    Every failure surfaces as :class:`StorageError` so callers never see SDK
    exception types.
    """

    def __init__(self, bucket: str, client=None):
        self.bucket = bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def download(self, path: str) -> bytes:
        try:
            data = self.client.storage.from_(self.bucket).download(path)
        except Exception as e:
            raise StorageError(f"Failed to download {self.bucket}/{path}", path=path) from e
        if hasattr(data, "error") and data.error:
            raise StorageError(f"Failed to download {self.bucket}/{path}: {data.error}", path=path)
        if not isinstance(data, (bytes, bytearray)):
            raise StorageError(f"Unexpected response downloading {self.bucket}/{path}", path=path)
        return bytes(data)

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        try:
            result = self.client.storage.from_(self.bucket).upload(
                path,
                data,
                file_options={"content-type": content_type},
            )
        except Exception as e:
            raise StorageError(f"Failed to upload {self.bucket}/{path}", path=path) from e
        if hasattr(result, "error") and result.error:
            raise StorageError(f"Failed to upload {self.bucket}/{path}: {result.error}", path=path)
        logger.info(f"Uploaded {self.bucket}/{path} ({len(data)} bytes)")

    def remove(self, path: str) -> None:
        """Best-effort delete; failures are logged, not raised."""
        try:
            self.client.storage.from_(self.bucket).remove([path])
        except Exception as e:
            logger.warning(f"Failed to remove {self.bucket}/{path}: {str(e)}")


def get_answer_store() -> SupabaseBlobStore:
    return SupabaseBlobStore(settings.ANSWERS_BUCKET)


def get_submission_file_store() -> SupabaseBlobStore:
    return SupabaseBlobStore(settings.SUBMISSIONS_BUCKET)

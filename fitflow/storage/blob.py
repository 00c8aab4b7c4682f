"""
Filesystem blob store for raw FIT files.

Files live under ``<base>/<user_id>/YYYY/MM/DD/<epoch-ms>_<name>``; all disk
I/O runs in a worker thread.
"""
import asyncio
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import StorageError, storage_error
from ..utils.logging import get_logger
from ..utils.timestamps import ensure_utc
from .interface import BlobStorage


logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def generate_fit_file_path(user_id: str, activity_date: datetime, filename: str,
                           now_ms: Optional[int] = None) -> str:
    """
    Archive path for an uploaded file.

    Example:
        >>> generate_fit_file_path("user-123", datetime(2024, 1, 15, 10, 30), "Morning Run.fit", 1705320600000)
        'user-123/2024/01/15/1705320600000_morning_run.fit'
    """
    date = ensure_utc(activity_date)
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    clean_name = _UNSAFE_CHARS.sub("_", filename).lower()
    return f"{user_id}/{date.year}/{date.month:02d}/{date.day:02d}/{now_ms}_{clean_name}"


class LocalBlobStorage(BlobStorage):
    """Blob storage rooted at a local directory"""

    def __init__(self, base_path: Union[str, Path], delete_batch_size: int = 50,
                 delete_batch_pause: float = 0.1):
        self.base_path = Path(base_path)
        self.delete_batch_size = delete_batch_size
        self.delete_batch_pause = delete_batch_pause

    def _resolve(self, path: str) -> Path:
        base = self.base_path.resolve()
        target = (base / path).resolve()
        if target != base and base not in target.parents:
            raise storage_error("Path escapes storage root", path=path)
        return target

    async def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(self._write_exclusive, target, data)
        except FileExistsError as e:
            raise storage_error("File already exists", path=path) from e
        except OSError as e:
            raise storage_error(f"Failed to store file: {e}", path=path) from e
        logger.info("Stored FIT file", path=path, size=len(data))
        return path

    @staticmethod
    def _write_exclusive(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "xb") as f:
            f.write(data)

    async def list_files(self, user_id: str, limit: int = 50, offset: int = 0,
                         year: Optional[int] = None, month: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        List a user's archived files, newest first.

        Args:
            user_id: Owner
            limit: Page size
            offset: Files to skip
            year: Restrict to one year
            month: Restrict to one month (needs year)
        """
        prefix = user_id
        if year is not None:
            prefix = f"{prefix}/{year}"
            if month is not None:
                prefix = f"{prefix}/{month:02d}"
        root = self._resolve(prefix)
        files = await asyncio.to_thread(self._scan, root)
        return files[offset:offset + limit]

    def _scan(self, root: Path) -> List[Dict[str, Any]]:
        if not root.is_dir():
            return []
        base = self.base_path.resolve()
        files = []
        for entry in root.rglob("*"):
            if not entry.is_file():
                continue
            stat = entry.stat()
            files.append({
                'path': entry.relative_to(base).as_posix(),
                'name': entry.name,
                'size': stat.st_size,
                'modified_at': datetime.fromtimestamp(stat.st_mtime).isoformat(),
            })
        # Names start with the upload epoch, so path order is upload order
        files.sort(key=lambda f: f['path'], reverse=True)
        return files

    async def delete_files(self, paths: List[str]) -> Dict[str, Any]:
        """
        Delete files in batches with a pause between batches.

        Returns:
            {'deleted': [...], 'failed': [{'path', 'error'}]}
        """
        deleted: List[str] = []
        failed: List[Dict[str, str]] = []
        for start in range(0, len(paths), self.delete_batch_size):
            batch = paths[start:start + self.delete_batch_size]
            for path in batch:
                try:
                    target = self._resolve(path)
                    await asyncio.to_thread(target.unlink)
                    deleted.append(path)
                except (OSError, StorageError) as e:
                    failed.append({'path': path, 'error': str(e)})
            if start + self.delete_batch_size < len(paths):
                await asyncio.sleep(self.delete_batch_pause)

        if failed:
            logger.warning("Some files could not be deleted", failed=len(failed), deleted=len(deleted))
        return {'deleted': deleted, 'failed': failed}

import uuid
import aiofiles
import aiofiles.os
from pathlib import Path
from typing import Any


class StorageService:
    def __init__(self, upload_dir: str | Path):
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def _get_file_path(self, key: str) -> Path:
        """Get file path with path traversal protection."""
        if not key or ".." in key or key.startswith("/") or key.startswith("\\"):
            raise ValueError(f"Invalid storage key: {key}")

        file_path = (self.upload_dir / key).resolve()

        if not str(file_path).startswith(str(self.upload_dir.resolve())):
            raise ValueError(f"Path traversal attempt detected: {key}")

        return file_path

    async def save_upload_file(self, upload_file: Any, max_size: int) -> tuple[str, int]:
        """Stream an upload to disk, enforcing the size limit. Returns (key, size)."""
        filename = getattr(upload_file, "filename", "") or ""
        key = f"{uuid.uuid4()}{Path(filename).suffix.lower()}"
        file_path = self._get_file_path(key)

        bytes_read = 0
        try:
            async with aiofiles.open(file_path, "wb") as f:
                while chunk := await upload_file.read(8192):
                    bytes_read += len(chunk)
                    if bytes_read > max_size:
                        raise ValueError("File size exceeds limit")
                    await f.write(chunk)

            if bytes_read == 0:
                raise ValueError("Uploaded file is empty")
        except Exception:
            if await aiofiles.os.path.exists(file_path):
                await aiofiles.os.remove(file_path)
            raise

        return key, bytes_read

    async def exists(self, key: str) -> bool:
        try:
            return await aiofiles.os.path.exists(self._get_file_path(key))
        except ValueError:
            return False

    async def get_file_path(self, key: str) -> Path:
        """Get absolute file path for a storage key."""
        file_path = self._get_file_path(key)
        if not await aiofiles.os.path.exists(file_path):
            raise FileNotFoundError(f"File not found: {key}")
        return file_path

    async def delete_file(self, key: str) -> None:
        file_path = self._get_file_path(key)
        if await aiofiles.os.path.exists(file_path):
            await aiofiles.os.remove(file_path)

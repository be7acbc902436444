"""
Almacén de ficheros subidos (fotos de mascotas, imágenes de servicios).

Los ficheros se guardan en MEDIA_DIR/<carpeta>/ con un nombre basado en la
marca de tiempo y se sirven como /media/<carpeta>/<nombre>.
"""
import logging
import secrets
import time
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import urlparse

import aiofiles
import aiofiles.os
from fastapi import Request, UploadFile

from .errors import UploadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class MediaStore:
    def __init__(self, root: str, max_bytes: int, max_files: int, url_prefix: str = "/media"):
        self.root = Path(root)
        self.max_bytes = max_bytes
        self.max_files = max_files
        self.url_prefix = url_prefix.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    async def save(self, upload: UploadFile, folder: str) -> str:
        if not (upload.content_type or "").startswith("image/"):
            raise UploadError("Only image files (jpg, jpeg, png, gif) are allowed.")

        ext = Path(upload.filename or "").suffix.lower() or ".jpg"
        filename = f"{folder}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
        directory = self.root / folder
        directory.mkdir(parents=True, exist_ok=True)
        abs_path = directory / filename

        written = 0
        too_large = False
        async with aiofiles.open(abs_path, "wb") as out:
            while chunk := await upload.read(CHUNK_SIZE):
                written += len(chunk)
                if written > self.max_bytes:
                    too_large = True
                    break
                await out.write(chunk)

        if too_large:
            await self._remove(abs_path)
            limit_mb = self.max_bytes // (1024 * 1024)
            raise UploadError(f"File too large. Maximum size is {limit_mb}MB.")

        return f"{self.url_prefix}/{folder}/{filename}"

    async def save_many(self, uploads: Iterable[UploadFile], folder: str) -> List[str]:
        """Guarda todos los ficheros o ninguno."""
        files = [u for u in uploads if u.filename]
        if len(files) > self.max_files:
            raise UploadError(f"Too many files. Maximum {self.max_files} photos allowed.")

        urls: List[str] = []
        try:
            for upload in files:
                urls.append(await self.save(upload, folder))
        except UploadError:
            await self.evict_many(urls)
            raise
        return urls

    def path_for(self, url: str) -> Optional[Path]:
        path = urlparse(url).path
        prefix = f"{self.url_prefix}/"
        if not path.startswith(prefix):
            return None
        candidate = (self.root / path[len(prefix):]).resolve()
        if self.root.resolve() not in candidate.parents:
            return None
        return candidate

    async def evict(self, url: str) -> None:
        """Borra el fichero asociado a la URL (best effort, nunca lanza)."""
        path = self.path_for(url)
        if path is None:
            logger.warning("URL fuera del almacén de media, no se borra: %s", url)
            return
        await self._remove(path)

    async def evict_many(self, urls: Iterable[str]) -> None:
        for url in urls:
            await self.evict(url)

    async def _remove(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("No se pudo borrar el fichero %s", path, exc_info=True)


def get_media(request: Request) -> MediaStore:
    return request.app.state.media

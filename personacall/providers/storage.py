"""
Audio Storage

Persists synthesized speech on local disk and hands back the public URL
the telephony provider (or a client) fetches it from.
"""

import logging
import os
import re
import uuid
from typing import Optional

import aiofiles


logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/ogg": "ogg",
}

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class AudioStore:
    """Local directory of synthesized audio clips."""

    def __init__(self, directory: str, base_url: str, media_path: str = "/media"):
        self.directory = directory
        self.base_url = base_url.rstrip("/")
        self.media_path = "/" + media_path.strip("/")

    def url_for(self, filename: str) -> str:
        return f"{self.base_url}{self.media_path}/{filename}"

    def path_for(self, filename: str) -> Optional[str]:
        """Filesystem path of a stored clip, or None for unsafe names."""
        if not _SAFE_NAME.match(filename) or filename.startswith("."):
            return None
        return os.path.join(self.directory, filename)

    async def save(self, audio: bytes, content_type: str = "audio/mpeg") -> str:
        """Write a clip and return its public URL."""
        os.makedirs(self.directory, exist_ok=True)
        extension = _EXTENSIONS.get(content_type.split(";")[0].strip(), "mp3")
        filename = f"tts-{uuid.uuid4()}.{extension}"

        async with aiofiles.open(os.path.join(self.directory, filename), "wb") as f:
            await f.write(audio)

        logger.debug(f"Stored {len(audio)} bytes of audio as {filename}")
        return self.url_for(filename)


__all__ = ["AudioStore"]

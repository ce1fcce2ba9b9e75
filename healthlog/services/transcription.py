"""Audio transcription for voice journal entries."""

import asyncio
from pathlib import Path
from urllib.parse import urlparse

from openai import AsyncOpenAI

from healthlog.config import get_settings
from healthlog.core.errors import TranscriptionError
from healthlog.core.logging import get_logger

logger = get_logger(__name__)


class AudioLoader:
    """Resolve an entry's audio URL to the uploaded file and read it."""

    def __init__(self, uploads_dir: str | Path | None = None) -> None:
        self.uploads_dir = Path(uploads_dir or get_settings().uploads_dir)

    def resolve(self, audio_url: str) -> Path:
        """
        Map an audio URL to a file in the uploads directory.

        Only the last path segment is used, e.g.
        "http://host/uploads/audio/abc.webm" -> <uploads_dir>/abc.webm
        """
        filename = Path(urlparse(audio_url).path).name
        if not filename:
            raise ValueError(f"Invalid audio URL: {audio_url}")
        return self.uploads_dir / filename

    async def load(self, audio_url: str) -> tuple[str, bytes]:
        """Return (filename, bytes) for an audio URL."""
        path = self.resolve(audio_url)
        data = await asyncio.to_thread(path.read_bytes)
        return path.name, data


class TranscriptionService:
    """Speech-to-text via the OpenAI transcription API."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        loader: AudioLoader | None = None,
    ) -> None:
        settings = get_settings()
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.transcription_model
        self.loader = loader or AudioLoader()

    async def transcribe(self, audio_bytes: bytes, filename: str = "audio.wav") -> str:
        """Transcribe raw audio bytes to text."""
        transcription = await self.client.audio.transcriptions.create(
            file=(filename, audio_bytes),
            model=self.model,
            response_format="text",
        )
        # response_format="text" returns a plain string
        return str(transcription).strip()

    async def transcribe_url(self, audio_url: str) -> str:
        """
        Load and transcribe the audio behind an entry's URL.

        Raises:
            TranscriptionError: If the file can't be read or the API call fails
        """
        logger.bind(audio_url=audio_url).info("transcription_started")
        try:
            filename, audio_bytes = await self.loader.load(audio_url)
            text = await self.transcribe(audio_bytes, filename)
        except Exception as e:
            logger.bind(audio_url=audio_url, error=str(e)).error("transcription_failed")
            raise TranscriptionError(f"Audio transcription failed: {e}") from e

        logger.bind(audio_url=audio_url, length=len(text)).info("transcription_completed")
        return text

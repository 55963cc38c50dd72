"""
Speech output for assistant replies.

Best effort only: a reply is always shown as text, and a synthesis
failure becomes a notice instead of an error.
"""

import re
import time
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Protocol
from uuid import uuid4

from gtts import gTTS
from gtts.lang import tts_langs
from gtts.tts import gTTSError

from health_companion.models.schemas import SpeechResult
from health_companion.utils.logger import get_logger

logger = get_logger("speech")

SPEECH_FAILED_NOTICE = "Sorry, I couldn't speak the response. Text is displayed."

_CLIP_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class SpeechSynthesizer(Protocol):
    """Capability to read text aloud in a given locale."""

    def synthesize(self, text: str, locale: str) -> SpeechResult:
        ...


class NullSpeechSynthesizer:
    """Speech disabled (headless deployments, tests)."""

    def synthesize(self, text: str, locale: str) -> SpeechResult:
        return SpeechResult(spoken=False)


def is_speakable(text: str) -> bool:
    """True when the text holds at least one letter or digit."""
    return any(char.isalnum() for char in text)


@lru_cache
def available_voices() -> Dict[str, str]:
    """Language codes gTTS can speak, lower-cased."""
    return {code.lower(): name for code, name in tts_langs().items()}


def match_voice(locale: str, voices: Dict[str, str]) -> Optional[str]:
    """
    Pick the voice for a BCP 47 tag.

    Tries the full tag first ("zh-cn"), then its primary subtag
    ("hi-IN" -> "hi").
    """
    tag = locale.lower().replace("_", "-")
    if tag in voices:
        return tag
    primary = tag.split("-")[0]
    if primary in voices:
        return primary
    return None


def prune_clips(
    output_dir: Path,
    max_age_seconds: float,
    now: Optional[float] = None
) -> int:
    """
    Delete clips older than ``max_age_seconds``.

    Returns:
        Number of clips removed
    """
    cutoff = (now if now is not None else time.time()) - max_age_seconds
    removed = 0
    for path in Path(output_dir).glob("*.mp3"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except FileNotFoundError:
            # Deleted concurrently by another worker
            continue

    if removed:
        logger.info("Expired speech clips removed", count=removed)
    return removed


class GTTSSpeechSynthesizer:
    """
    Renders speech to MP3 clips with gTTS.

    Clips are written to ``output_dir`` as ``<clip_id>.mp3`` and served
    by the speech endpoint. Clips older than ``clip_ttl_seconds`` are
    removed before each new clip is written.
    """

    def __init__(
        self,
        output_dir: Path,
        default_language: str = "en",
        clip_ttl_seconds: float = 3600.0
    ):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.default_language = default_language
        self.clip_ttl_seconds = clip_ttl_seconds

    def select_voice(self, locale: str) -> str:
        """Matching voice, or the default voice with a warning."""
        voice = match_voice(locale, available_voices())
        if voice is None:
            logger.warning(
                "No voice for locale, falling back to default",
                locale=locale,
                voice=self.default_language,
            )
            return self.default_language
        return voice

    def synthesize(self, text: str, locale: str) -> SpeechResult:
        # gTTS refuses text that tokenises to nothing (". . ")
        if not is_speakable(text):
            return SpeechResult(spoken=False)

        voice = self.select_voice(locale)
        prune_clips(self.output_dir, self.clip_ttl_seconds)

        clip_id = uuid4().hex
        path = self.output_dir / f"{clip_id}.mp3"

        try:
            gTTS(text=text, lang=voice).save(str(path))
        except (gTTSError, AssertionError, ValueError, OSError) as exc:
            logger.error("Speech synthesis failed", voice=voice, error=str(exc))
            path.unlink(missing_ok=True)
            return SpeechResult(spoken=False, voice=voice, notice=SPEECH_FAILED_NOTICE)

        logger.info("Speech clip created", clip_id=clip_id, voice=voice, chars=len(text))
        return SpeechResult(
            spoken=True,
            clip_id=clip_id,
            audio_url=f"/speech/{clip_id}",
            voice=voice,
        )


def resolve_clip(output_dir: Path, clip_id: str) -> Optional[Path]:
    """Path of an existing clip; None for unknown or malformed ids."""
    if not _CLIP_ID_PATTERN.match(clip_id):
        return None
    path = Path(output_dir) / f"{clip_id}.mp3"
    return path if path.is_file() else None

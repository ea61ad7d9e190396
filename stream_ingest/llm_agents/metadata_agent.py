"""Metadata agent: keyframes plus captions in, title/tags/rating out."""

from functools import lru_cache
from pathlib import Path
from typing import Any

from stream_ingest.core.constants import CATEGORIES, CONTENT_RATINGS, MAX_MODEL_IMAGES, MOODS
from stream_ingest.core.schemas import AnalysisDebug, AnalysisResult
from stream_ingest.llm_agents.base import BaseAgent

PROMPTS_DIR = Path(__file__).parent / "prompts"
NO_CAPTIONS = "(No captions available)"


@lru_cache
def _load_prompt(name: str) -> str:
    return (PROMPTS_DIR / name).read_text(encoding="utf-8").strip()


def build_system_prompt() -> str:
    return (
        _load_prompt("metadata_system.txt")
        .replace("{categories}", ", ".join(CATEGORIES))
        .replace("{content_ratings}", '" | "'.join(CONTENT_RATINGS))
        .replace("{moods}", ", ".join(MOODS))
    )


def build_user_prompt(image_count: int, duration: float | None, captions_csv: str | None) -> str:
    duration_text = str(round(duration)) if duration else "unknown"
    captions = f"\n{captions_csv}" if captions_csv else NO_CAPTIONS
    # Replace instead of format; captions may contain braces
    return (
        _load_prompt("metadata_user.txt")
        .replace("{image_count}", str(image_count))
        .replace("{duration}", duration_text)
        .replace("{captions}", captions)
    )


class MetadataAgent(BaseAgent):
    """Generate descriptive metadata from video keyframes."""

    @property
    def model(self) -> str:
        return self.settings.llm_model

    @property
    def timeout(self) -> int:
        return self.settings.llm_timeout

    def build_messages(
        self,
        image_urls: list[str],
        duration: float | None = None,
        captions_csv: str | None = None,
    ) -> tuple[list[dict[str, Any]], AnalysisDebug]:
        """
        Build the multimodal request.

        Args:
            image_urls: Keyframe URLs, capped at 8
            duration: Video length in seconds
            captions_csv: CSV transcript, if any

        Returns:
            Tuple of (chat messages, debug record of the exact inputs)
        """
        images = image_urls[:MAX_MODEL_IMAGES]
        system_prompt = build_system_prompt()
        user_prompt = build_user_prompt(len(images), duration, captions_csv)

        messages = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": user_prompt},
                    *({"type": "image_url", "image_url": {"url": url}} for url in images),
                ],
            },
        ]
        debug = AnalysisDebug(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            screenshots=images,
            transcription=captions_csv or None,
        )
        return messages, debug

    def analyze(
        self,
        image_urls: list[str],
        duration: float | None = None,
        captions_csv: str | None = None,
    ) -> tuple[AnalysisResult, AnalysisDebug]:
        """
        Analyze keyframes and captions.

        Raises:
            UpstreamError: Model backend failed
            SchemaValidationError: Answer was not valid JSON or failed the schema
        """
        messages, debug = self.build_messages(image_urls, duration, captions_csv)
        result = self._call_and_validate(messages, AnalysisResult)
        return result, debug

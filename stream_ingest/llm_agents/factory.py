"""LLM client factory for creating API clients."""

from openai import OpenAI

from stream_ingest.core.config import get_settings
from stream_ingest.core.exceptions import ConfigurationError


class LLMClientFactory:
    """Factory for creating LLM API clients."""

    _instance: OpenAI | None = None

    @classmethod
    def get_client(cls) -> OpenAI:
        """Get or create OpenAI-compatible client."""
        if cls._instance is None:
            settings = get_settings()
            if not settings.llm_api_key:
                raise ConfigurationError(
                    "Model backend API key is not configured",
                    details={"required": ["LLM_API_KEY"]},
                )
            cls._instance = OpenAI(
                base_url=settings.llm_api_base,
                api_key=settings.llm_api_key,
                timeout=float(settings.llm_timeout),
                # Model calls are terminal; retries are the caller's decision
                max_retries=0,
                default_headers={
                    "HTTP-Referer": settings.llm_referer,
                    "X-Title": settings.llm_app_title,
                },
            )
        return cls._instance

    @classmethod
    def reset_client(cls) -> None:
        """Reset the client (useful for testing)."""
        cls._instance = None


def get_llm_client() -> OpenAI:
    """Get the global LLM client instance."""
    return LLMClientFactory.get_client()

"""Base agent class for LLM-driven analysis."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, TypeVar

import openai
from openai import OpenAI
from pydantic import BaseModel, ValidationError

from stream_ingest.core.config import Settings, get_settings
from stream_ingest.core.exceptions import SchemaValidationError, UpstreamError
from stream_ingest.llm_agents.factory import get_llm_client

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger(__name__)

FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
FENCE_CLOSE = re.compile(r"\s*```$")


class BaseAgent(ABC):
    """Base class for all LLM agents."""

    def __init__(self, client: OpenAI | None = None, settings: Settings | None = None):
        self.client = client or get_llm_client()
        self.settings = settings or get_settings()

    @property
    @abstractmethod
    def model(self) -> str:
        """Model name for this agent."""
        pass

    @property
    @abstractmethod
    def timeout(self) -> int:
        """Timeout in seconds for this agent."""
        pass

    def _call_llm(
        self,
        messages: list[dict[str, Any]],
        max_tokens: int = 1000,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> str:
        """
        Call the model once. There is no retry: a failed or malformed answer
        is terminal for the request.

        Raises:
            UpstreamError: Backend returned an error or an empty message
        """
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.timeout,
                **kwargs,
            )
        except openai.APIStatusError as e:
            raise UpstreamError(
                f"Model backend failed with HTTP {e.status_code}",
                upstream_status=e.status_code,
                upstream_body=e.response.text[:2000] if e.response is not None else str(e),
            ) from e
        except openai.APIError as e:
            raise UpstreamError(f"Model backend call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamError("No content in model response")
        return content

    def _extract_json_block(self, content: str) -> str:
        """Strip an enclosing markdown code fence, if any."""
        cleaned = FENCE_OPEN.sub("", content.strip())
        return FENCE_CLOSE.sub("", cleaned).strip()

    def _parse_json_response(self, content: str) -> dict[str, Any]:
        """
        Parse the model answer as a JSON object.

        Raises:
            SchemaValidationError: Content is not a JSON object
        """
        json_str = self._extract_json_block(content)
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            logger.error("Model returned invalid JSON: %s", content[:500])
            raise SchemaValidationError(
                f"Invalid JSON in model response: {e}",
                details={"content": json_str[:200]},
            ) from e
        if not isinstance(data, dict):
            raise SchemaValidationError(
                "Model response is not a JSON object",
                details={"content": json_str[:200]},
            )
        return data

    def _validate_response(self, data: dict[str, Any], schema_class: type[T]) -> T:
        """
        Validate parsed JSON against a Pydantic schema.

        Raises:
            SchemaValidationError: Any field missing or out of range
        """
        try:
            return schema_class.model_validate(data)
        except ValidationError as e:
            errors = [
                {
                    "field": ".".join(str(loc) for loc in err["loc"]),
                    "message": err["msg"],
                    "type": err["type"],
                }
                for err in e.errors()
            ]
            raise SchemaValidationError(
                f"Model response failed schema validation ({len(errors)} errors)",
                details={"errors": errors},
            ) from e

    def _call_and_validate(self, messages: list[dict[str, Any]], schema_class: type[T]) -> T:
        content = self._call_llm(
            messages,
            max_tokens=self.settings.llm_max_tokens,
            temperature=self.settings.llm_temperature,
        )
        data = self._parse_json_response(content)
        return self._validate_response(data, schema_class)

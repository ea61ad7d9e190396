"""LLM agents for metadata synthesis."""

from stream_ingest.llm_agents.base import BaseAgent
from stream_ingest.llm_agents.factory import LLMClientFactory, get_llm_client
from stream_ingest.llm_agents.metadata_agent import MetadataAgent

__all__ = ["BaseAgent", "LLMClientFactory", "get_llm_client", "MetadataAgent"]

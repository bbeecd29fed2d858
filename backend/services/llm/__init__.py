"""LLM services package.

This package provides modular LLM functionality:
- client: LLM API client abstraction
- sql_generator: Transformation query generation
- chat: Tool-calling agent loop over a dataset (import from services.llm.chat)
- prompts: Prompt templates
- tools: Tool definitions for function calling
"""
from services.llm.client import LLMAPIError, LLMRateLimitError, OpenRouterClient, get_llm_client
from services.llm.sql_generator import SQLGenerationService

__all__ = [
    "LLMAPIError",
    "LLMRateLimitError",
    "OpenRouterClient",
    "get_llm_client",
    "SQLGenerationService",
]

from meetlogger.services.llm.base import BaseLLMProvider, LLMProvider
from meetlogger.services.llm.gemini_provider import GeminiProvider

__all__ = [
    "BaseLLMProvider",
    "LLMProvider",
    "GeminiProvider",
]

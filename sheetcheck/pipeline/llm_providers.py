"""
LLM Providers Module
====================
Swappable chat-model backends for the in-process scorer.
Supports OpenAI, Groq Cloud (OpenAI-compatible) and Ollama (local).
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Union

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from sheetcheck.core import AIModelException, ConfigurationException, TransientTransportException

logger = logging.getLogger(__name__)


TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connect",
    "rate limit",
    "ratelimit",
    "429",
    "502",
    "503",
    "temporarily unavailable",
)


def is_transient_llm_error(error: Exception) -> bool:
    """True for timeouts, dropped connections and rate limits"""
    text = f"{type(error).__name__} {error}".lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


class LLMProvider(str, Enum):
    """Supported LLM providers"""
    OPENAI = "openai"
    GROQ = "groq"
    OLLAMA = "ollama"


class BaseLLM(ABC):
    """
    Unified interface over LangChain chat models.
    """

    def __init__(self, model: str, temperature: float = 0.2):
        self.model = model
        self.temperature = temperature
        self._llm: Optional[BaseChatModel] = None

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    def _create_llm(self, json_mode: bool = False) -> BaseChatModel:
        """Create the underlying LangChain chat model"""
        pass

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = self._create_llm()
        return self._llm

    def get_llm(self, json_mode: bool = False) -> BaseChatModel:
        """
        Get LLM instance with optional JSON mode.

        Args:
            json_mode: If True, configure the model to answer with a JSON object

        Returns:
            LangChain chat model instance
        """
        if json_mode:
            return self._create_llm(json_mode=True)
        return self.llm

    async def ainvoke(
        self,
        prompt: Union[str, List[BaseMessage]],
        json_mode: bool = False
    ) -> AIMessage:
        """
        Invoke the model, mapping provider failures onto API exceptions.

        Timeouts, connection failures and rate limits are transient; any
        other provider error is reported as a model error.
        """
        try:
            return await self.get_llm(json_mode=json_mode).ainvoke(prompt)
        except Exception as e:
            error_str = str(e).lower()
            if "401" in error_str or "unauthorized" in error_str or "invalid api key" in error_str:
                logger.error(f"{self.provider_name} authentication error: {e}")
                raise AIModelException(self.model, "API key is invalid or expired")
            if is_transient_llm_error(e):
                logger.warning(f"{self.provider_name} call failed: {e}")
                raise TransientTransportException(f"Scoring model call failed: {e}")
            logger.error(f"{self.provider_name} rejected the request: {e}")
            raise AIModelException(self.model, str(e))


class OpenAILLM(BaseLLM):
    """OpenAI chat completions, also used for any OpenAI-compatible endpoint"""

    def __init__(
        self,
        model: str = "gpt-4o",
        temperature: float = 0.2,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: int = 4000
    ):
        super().__init__(model=model, temperature=temperature)
        if not api_key:
            raise ConfigurationException("OPENAI_API_KEY")
        self.api_key = api_key
        self.base_url = base_url
        self.max_tokens = max_tokens
        logger.info(f"{type(self).__name__} initialized: model={model}, base_url={base_url}")

    @property
    def provider_name(self) -> str:
        return LLMProvider.OPENAI.value

    def _create_llm(self, json_mode: bool = False) -> BaseChatModel:
        kwargs = {
            "model": self.model,
            "temperature": self.temperature,
            "api_key": self.api_key,
            "max_tokens": self.max_tokens,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
        return ChatOpenAI(**kwargs)


class GroqLLM(OpenAILLM):
    """Groq Cloud through its OpenAI-compatible API"""

    def __init__(
        self,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.2,
        api_key: Optional[str] = None,
        base_url: str = "https://api.groq.com/openai/v1",
        max_tokens: int = 4000
    ):
        if not api_key:
            raise ConfigurationException("GROQ_API_KEY")
        super().__init__(
            model=model,
            temperature=temperature,
            api_key=api_key,
            base_url=base_url,
            max_tokens=max_tokens
        )

    @property
    def provider_name(self) -> str:
        return LLMProvider.GROQ.value


class OllamaLLM(BaseLLM):
    """Ollama provider for local inference"""

    def __init__(
        self,
        model: str = "llama3.1:latest",
        temperature: float = 0.2,
        base_url: str = "http://localhost:11434",
        num_ctx: int = 8192
    ):
        super().__init__(model=model, temperature=temperature)
        self.base_url = base_url
        self.num_ctx = num_ctx
        logger.info(f"OllamaLLM initialized: model={model}, base_url={base_url}")

    @property
    def provider_name(self) -> str:
        return LLMProvider.OLLAMA.value

    def _create_llm(self, json_mode: bool = False) -> BaseChatModel:
        kwargs = {
            "model": self.model,
            "temperature": self.temperature,
            "base_url": self.base_url,
            "num_ctx": self.num_ctx,
        }
        if json_mode:
            kwargs["format"] = "json"
        return ChatOllama(**kwargs)


class LLMFactory:
    """
    Factory class for creating LLM instances from settings.
    """

    @classmethod
    def create(cls, provider: Optional[str] = None, model: Optional[str] = None) -> BaseLLM:
        """
        Create an LLM instance based on provider.

        Args:
            provider: "openai", "groq" or "ollama"; defaults to LLM_PROVIDER
            model: Model name; defaults to the provider's configured model

        Returns:
            BaseLLM instance
        """
        from sheetcheck.config import settings

        provider = (provider or settings.LLM_PROVIDER).lower()
        logger.info(f"Creating LLM: provider={provider}, model={model}")

        if provider == LLMProvider.OPENAI.value:
            return OpenAILLM(
                model=model or settings.SCORER_MODEL,
                temperature=settings.SCORER_TEMPERATURE,
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.VISION_BASE_URL,
                max_tokens=settings.VISION_MAX_TOKENS,
            )
        if provider == LLMProvider.GROQ.value:
            return GroqLLM(
                model=model or settings.GROQ_MODEL,
                temperature=settings.SCORER_TEMPERATURE,
                api_key=settings.GROQ_API_KEY,
                base_url=settings.GROQ_BASE_URL,
            )
        if provider == LLMProvider.OLLAMA.value:
            return OllamaLLM(
                model=model or settings.OLLAMA_MODEL,
                temperature=settings.SCORER_TEMPERATURE,
                base_url=settings.OLLAMA_BASE_URL,
                num_ctx=settings.OLLAMA_NUM_CTX,
            )
        raise ValueError(f"Unknown LLM provider: {provider}. Supported: openai, groq, ollama")

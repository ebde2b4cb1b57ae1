"""Completion gateway: routes a transcript to the provider serving a model."""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from openai import APIError, AsyncOpenAI, AuthenticationError, PermissionDeniedError

from ..config import Settings
from ..domain.errors import ChatError, CredentialError, GenerationFailed, InvalidRequest
from ..domain.models import ChatMessage, ModelId, Role

logger = structlog.get_logger()


def _mentions_api_key(message: str) -> bool:
    lowered = message.lower()
    return "api_key" in lowered or "api key" in lowered


class CompletionProvider(ABC):
    """One vendor able to turn a transcript into response text."""

    name: str = "provider"
    models: Tuple[str, ...] = ()

    @property
    def configured(self) -> bool:
        """Whether the credential this provider needs is present."""
        return True

    @abstractmethod
    async def generate(self, messages: Sequence[ChatMessage], model: str) -> str:
        """Produce the assistant reply for ``messages``."""
        pass

    async def close(self) -> None:
        """Release SDK clients."""


class OpenAIProvider(CompletionProvider):
    """Chat completions through the OpenAI SDK."""

    name = "openai"
    models = (ModelId.GPT_35_TURBO.value, ModelId.GPT_4.value)

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.OPENAI_API_KEY if settings.has_openai_key else None
        self._timeout = settings.PROVIDER_TIMEOUT
        self._max_tokens = settings.MAX_OUTPUT_TOKENS
        self._client: Optional[AsyncOpenAI] = None

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def _get_client(self) -> AsyncOpenAI:
        if self._api_key is None:
            raise CredentialError("OPENAI_API_KEY is not set")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def generate(self, messages: Sequence[ChatMessage], model: str) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[{"role": m.role.value, "content": m.content} for m in messages],
                max_tokens=self._max_tokens,
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            raise CredentialError(f"OpenAI rejected the API key: {e}") from e
        except APIError as e:
            if _mentions_api_key(str(e)):
                raise CredentialError(f"OpenAI API key error: {e}") from e
            raise GenerationFailed(f"OpenAI API error: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class GeminiProvider(CompletionProvider):
    """Chat sessions through the Google Generative AI SDK."""

    name = "gemini"
    models = (ModelId.GEMINI_PRO.value,)

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.GEMINI_API_KEY if settings.has_gemini_key else None
        self._model_name = settings.GEMINI_MODEL
        self._timeout = settings.PROVIDER_TIMEOUT
        self._max_tokens = settings.MAX_OUTPUT_TOKENS
        self._model: Optional[genai.GenerativeModel] = None

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def _get_model(self) -> genai.GenerativeModel:
        if self._api_key is None:
            raise CredentialError("GOOGLE_GENERATIVE_AI_API_KEY is not set")
        if self._model is None:
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(self._model_name)
            logger.info("gemini_model_initialized", model=self._model_name)
        return self._model

    @staticmethod
    def split_history(messages: Sequence[ChatMessage]) -> Tuple[List[Dict], str]:
        """Split a transcript into Gemini chat history and the prompt to send."""
        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role == Role.USER:
                history = [
                    {
                        "role": "user" if m.role == Role.USER else "model",
                        "parts": [m.content],
                    }
                    for m in messages[:index]
                ]
                return history, messages[index].content
        raise InvalidRequest("Gemini needs at least one user message")

    async def generate(self, messages: Sequence[ChatMessage], model: str) -> str:
        gemini_model = self._get_model()
        history, prompt = self.split_history(messages)
        chat = gemini_model.start_chat(history=history)
        try:
            response = await chat.send_message_async(
                prompt,
                generation_config=genai.types.GenerationConfig(
                    max_output_tokens=self._max_tokens
                ),
                request_options={"timeout": self._timeout},
            )
            return response.text
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise CredentialError(f"Gemini rejected the API key: {e}") from e
        except google_exceptions.InvalidArgument as e:
            if _mentions_api_key(str(e)):
                raise CredentialError(f"Gemini API key error: {e}") from e
            raise GenerationFailed(f"Google Gemini API error: {e}") from e
        except google_exceptions.GoogleAPIError as e:
            raise GenerationFailed(f"Google Gemini API error: {e}") from e
        except ValueError as e:
            # response.text raises when the candidate carries no text parts
            raise GenerationFailed(f"Google Gemini returned no text: {e}") from e


class EchoProvider(CompletionProvider):
    """Development provider that answers every model without a network call."""

    name = "echo"
    models = tuple(m.value for m in ModelId)

    async def generate(self, messages: Sequence[ChatMessage], model: str) -> str:
        last = messages[-1].content if messages else ""
        return f'This is a test response from {model}. You said: "{last}"'


class CompletionGateway:
    """Dispatches generation requests to the provider registered for a model."""

    def __init__(self, providers: Iterable[CompletionProvider]) -> None:
        self._providers = list(providers)
        self._routes: Dict[str, CompletionProvider] = {}
        for provider in self._providers:
            for model in provider.models:
                self._routes[model] = provider

    @property
    def supported_models(self) -> List[str]:
        return sorted(self._routes)

    def supports(self, model: Optional[str]) -> bool:
        return model in self._routes

    async def generate(self, messages: Sequence[ChatMessage], model: str) -> str:
        """Generate the assistant reply; failures surface as ``ChatError`` subclasses."""
        provider = self._routes.get(model)
        if provider is None:
            raise InvalidRequest(f"Unsupported model: {model}")

        logger.info(
            "completion_requested",
            provider=provider.name,
            model=model,
            message_count=len(messages),
        )
        try:
            text = await provider.generate(messages, model)
        except ChatError as e:
            logger.error("completion_failed", provider=provider.name, model=model, error=e.message)
            raise
        except Exception as e:
            logger.error("completion_failed", provider=provider.name, model=model, error=str(e))
            raise GenerationFailed(f"{provider.name} provider error: {e}") from e

        if not text or not text.strip():
            logger.error("completion_empty", provider=provider.name, model=model)
            raise GenerationFailed(f"{provider.name} returned an empty response")

        logger.info("completion_succeeded", provider=provider.name, model=model, length=len(text))
        return text

    async def close(self) -> None:
        for provider in self._providers:
            await provider.close()


def build_gateway(settings: Settings) -> CompletionGateway:
    """Gateway wired from settings; development mode routes every model to the echo provider."""
    if settings.MOCK_COMPLETIONS:
        logger.info("gateway_initialized", mode="mock")
        return CompletionGateway([EchoProvider()])

    providers = [OpenAIProvider(settings), GeminiProvider(settings)]
    logger.info(
        "gateway_initialized",
        mode="live",
        openai_configured=providers[0].configured,
        gemini_configured=providers[1].configured,
    )
    return CompletionGateway(providers)

"""Text generation provider abstractions."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from .errors import (
    TranslationProviderConfigurationError,
    TranslationProviderError,
)
from .structures import GenerationRequest, GenerationResponse, TokenUsage

if TYPE_CHECKING:
    from .configuration import PostlingoConfig
    from .dispatcher import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1-nano"


def strip_code_fence(text: str) -> str:
    """Remove leading/trailing markdown code fences if present."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return text

    # Drop opening fence and optional language hint.
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return stripped
    body = stripped[first_newline + 1 :]
    closing_index = body.rfind("```")
    if closing_index != -1:
        body = body[:closing_index]
    return body.strip()


def _unwrap(value: Any) -> Any:
    # Some SDK helpers wrap strings in objects exposing ``value``.
    if hasattr(value, "value"):
        return value.value
    return value


class TextGenerationProvider(ABC):
    """Abstract adapter for the text generation service."""

    name = "abstract"

    @abstractmethod
    def generate(
        self,
        request: GenerationRequest,
        *,
        cancellation: Optional["CancellationToken"] = None,
    ) -> GenerationResponse:
        """Run one request and return the generated text and its token usage."""


class OpenAITextGenerationProvider(TextGenerationProvider):
    """Provider backed by the OpenAI (or Azure OpenAI) Responses API."""

    name = "openai"

    def __init__(
        self,
        *,
        settings: Optional["PostlingoConfig"] = None,
        client: Any = None,
        model: str | None = None,
        debug: bool = False,
    ) -> None:
        self.debug = debug
        if client is not None:
            self._client = client
            self._default_model = model or DEFAULT_MODEL
            return

        if settings is None:
            from .configuration import get_settings

            settings = get_settings()
        self.provider_kind = settings.LLM_PROVIDER
        self._client, default_model = self._build_client(settings)
        self._default_model = model or default_model

    def _build_client(self, settings: "PostlingoConfig") -> tuple[Any, str]:
        if self.provider_kind == "azure_openai":
            return self._build_azure_client(settings)

        return self._build_openai_client(settings)

    def _build_openai_client(self, settings: "PostlingoConfig") -> tuple[Any, str]:
        if not settings.OPENAI_API_KEY:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        from openai import OpenAI

        return (
            OpenAI(api_key=settings.OPENAI_API_KEY),
            settings.POSTLINGO_MODEL or DEFAULT_MODEL,
        )

    def _build_azure_client(self, settings: "PostlingoConfig") -> tuple[Any, str]:
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": settings.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": settings.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": settings.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        from openai import AzureOpenAI

        client = AzureOpenAI(
            api_key=settings.AZURE_OPENAI_API_KEY,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
        )
        # Azure routes by deployment name, not by model id.
        return client, settings.AZURE_OPENAI_DEPLOYMENT_NAME  # type: ignore[return-value]

    @property
    def model(self) -> str:
        return self._default_model

    def _client_for(self, cancellation: Optional["CancellationToken"]) -> Any:
        if cancellation is None:
            return self._client
        cancellation.raise_if_cancelled()
        remaining = cancellation.remaining()
        if remaining is None:
            return self._client
        return self._client.with_options(timeout=remaining)

    def generate(
        self,
        request: GenerationRequest,
        *,
        cancellation: Optional["CancellationToken"] = None,
    ) -> GenerationResponse:
        model = request.model or self._default_model
        self._log_debug("provider.request.system_instruction", request.system_instruction)
        self._log_debug("provider.request.user_prompt", request.user_prompt)

        client = self._client_for(cancellation)
        response = self._invoke_model(client, request, model)
        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        text = self._extract_text(response)
        if not text or not text.strip():
            raise TranslationProviderError(
                "Translation provider response empty or unrecognised."
            )
        return GenerationResponse(
            text=strip_code_fence(text),
            usage=self._extract_usage(response),
            raw=response,
        )

    def _invoke_model(
        self,
        client: Any,
        request: GenerationRequest,
        model: str,
    ) -> Any:
        """Call the Responses API."""

        kwargs: dict[str, Any] = {
            "model": model,
            "temperature": request.temperature,
            "input": [
                {
                    "role": "system",
                    "content": [
                        {"type": "input_text", "text": request.system_instruction},
                    ],
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": request.user_prompt},
                    ],
                },
            ],
        }
        schema = request.response_schema
        if schema is not None:
            kwargs["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": schema.name,
                    "description": schema.description,
                    "schema": schema.schema,
                    "strict": schema.strict,
                }
            }
        try:
            return client.responses.create(**kwargs)
        except Exception as exc:
            raise TranslationProviderError(
                f"Translation service unavailable: {exc}"
            ) from exc

    def _extract_text(self, response: Any) -> str | None:
        output_text = _unwrap(getattr(response, "output_text", None))
        if output_text:
            return str(output_text)

        parts: list[str] = []
        for item in getattr(response, "output", None) or []:
            for part in getattr(item, "content", None) or []:
                text_value = _unwrap(getattr(part, "text", None))
                if text_value:
                    parts.append(str(text_value))
        if parts:
            return "".join(parts)
        return None

    def _extract_usage(self, response: Any) -> TokenUsage:
        usage = getattr(response, "usage", None)
        if usage is None:
            return TokenUsage()
        input_tokens = int(getattr(usage, "input_tokens", 0) or 0)
        output_tokens = int(getattr(usage, "output_tokens", 0) or 0)
        total = getattr(usage, "total_tokens", None)
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=int(total) if total is not None else input_tokens + output_tokens,
        )

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except (TypeError, ValueError):
            message = repr(payload)
        logger.debug("[provider-debug] %s:\n%s", label, message)

    def _safe_dump_response(self, response: Any) -> Any:
        """Best-effort conversion of SDK response objects into JSON-friendly data."""

        if not self.debug:
            return None
        dump = getattr(response, "model_dump", None)
        if callable(dump):
            try:
                return dump()
            except Exception:  # pragma: no cover - debug output only
                pass
        return str(response)


class LegacyOpenAITextGenerationProvider(OpenAITextGenerationProvider):
    """Provider that uses the Chat Completions API for compatibility."""

    name = "legacy-openai"

    def _invoke_model(
        self,
        client: Any,
        request: GenerationRequest,
        model: str,
    ) -> Any:
        """Call the Chat Completions API."""

        kwargs: dict[str, Any] = {
            "model": model,
            "temperature": request.temperature,
            "messages": [
                {"role": "system", "content": request.system_instruction},
                {"role": "user", "content": request.user_prompt},
            ],
        }
        schema = request.response_schema
        if schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.name,
                    "description": schema.description,
                    "schema": schema.schema,
                    "strict": schema.strict,
                },
            }
        try:
            return client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise TranslationProviderError(
                f"Translation service unavailable: {exc}"
            ) from exc

    def _extract_text(self, response: Any) -> str | None:
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            if message is None:
                continue
            message_content = _unwrap(getattr(message, "content", None))
            if isinstance(message_content, list):
                parts: list[str] = []
                for part in message_content:
                    text_value = _unwrap(getattr(part, "text", None))
                    if text_value is None and isinstance(part, dict):
                        text_value = part.get("text")
                    if text_value:
                        parts.append(str(text_value))
                if parts:
                    return "\n".join(parts)
            elif message_content:
                return str(message_content)
        return None

    def _extract_usage(self, response: Any) -> TokenUsage:
        usage = getattr(response, "usage", None)
        if usage is None:
            return TokenUsage()
        prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
        total = getattr(usage, "total_tokens", None)
        return TokenUsage(
            input_tokens=prompt_tokens,
            output_tokens=completion_tokens,
            total_tokens=int(total) if total is not None else prompt_tokens + completion_tokens,
        )


def build_provider(
    name: str | None,
    *,
    settings: Optional["PostlingoConfig"] = None,
    model: str | None = None,
    debug: bool = False,
) -> TextGenerationProvider:
    """Factory to create providers by name."""

    normalized = (name or "openai").strip().lower()
    if normalized in {"openai", "gpt", "default"}:
        return OpenAITextGenerationProvider(settings=settings, model=model, debug=debug)
    if normalized in {"legacy-openai", "legacy_openai", "legacy", "openai-legacy"}:
        return LegacyOpenAITextGenerationProvider(
            settings=settings, model=model, debug=debug
        )
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )

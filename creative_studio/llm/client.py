from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import AsyncAnthropic
import google.generativeai as genai
from openai import AsyncOpenAI

from creative_studio.observability import get_openai_client_class, start_langfuse_generation


class LLMClientConfigError(Exception):
    pass


logger = logging.getLogger(__name__)
_DEFAULT_MODEL = os.getenv("LLM_DEFAULT_MODEL") or "gpt-4o"
_DEFAULT_TIMEOUT = int(os.getenv("LLM_REQUEST_TIMEOUT", "120"))
_MAX_RETRIES = int(os.getenv("LLM_REQUEST_RETRIES", "2"))


@dataclass
class LLMGenerationParams:
    model: str
    max_tokens: Optional[int] = None
    temperature: float = 0.2
    response_format: Optional[dict[str, Any]] = None


class LLMClient:
    """
    Async wrapper for the text-generation calls made by reasoning steps and copy plugins.
    Routes to the appropriate provider client based on the requested model.
    """

    def __init__(self, default_model: Optional[str] = None) -> None:
        self.default_model = default_model or _DEFAULT_MODEL
        self._gemini_configured = False
        self._anthropic_client: Optional[AsyncAnthropic] = None
        self._openai_client: Optional[AsyncOpenAI] = None

    async def generate_text(self, prompt: str, params: Optional[LLMGenerationParams] = None) -> str:
        model = params.model if params and params.model else self.default_model
        model = model or _DEFAULT_MODEL
        model_parameters = {
            "temperature": params.temperature if params else 0.2,
            "max_tokens": params.max_tokens if params else None,
        }
        with start_langfuse_generation(
            name="llm.generate_text",
            model=model,
            input=prompt,
            model_parameters=model_parameters,
        ) as generation:
            if self._is_openai_model(model):
                text = await self._generate_with_openai(prompt, model, params)
            elif model.startswith("claude"):
                text = await self._generate_with_anthropic(prompt, model, params)
            else:
                text = await self._generate_with_gemini(prompt, model, params)
            if generation is not None:
                generation.update(output=text)
            return text

    def _is_openai_model(self, model: str) -> bool:
        lower = model.lower()
        prefixes = ("gpt-", "chatgpt-", "o", "omni-")
        return any(lower.startswith(prefix) for prefix in prefixes)

    @staticmethod
    def _extract_response_text(response: Any) -> Optional[str]:
        text = getattr(response, "output_text", None)
        if text:
            return text
        parts: list[str] = []
        for item in getattr(response, "output", None) or []:
            for chunk in getattr(item, "content", None) or []:
                chunk_text = getattr(chunk, "text", None)
                if chunk_text:
                    parts.append(chunk_text)
        return "".join(parts) if parts else None

    @staticmethod
    def _openai_text_format_from_response_format(response_format: dict[str, Any]) -> dict[str, Any]:
        """Normalize Chat Completions `response_format` into Responses API `text.format`.

        Chat Completions nests the schema under `json_schema`; the Responses API expects
        `name` and `schema` at the top level. Either shape is accepted.
        """

        if not isinstance(response_format, dict):
            raise TypeError(
                "response_format must be a dict compatible with OpenAI response formatting. "
                f"Received {type(response_format).__name__}."
            )

        if response_format.get("type") != "json_schema":
            return dict(response_format)

        json_schema = response_format.get("json_schema")
        if isinstance(json_schema, dict):
            name = json_schema.get("name")
            if not isinstance(name, str) or not name.strip():
                raise ValueError(
                    "OpenAI Responses API requires structured outputs to include `text.format.name`."
                )
            if not isinstance(json_schema.get("schema"), dict):
                raise ValueError(
                    "OpenAI Responses API requires structured outputs to include `text.format.schema` as a JSON schema object."
                )
            return {"type": "json_schema", **json_schema}

        name = response_format.get("name")
        schema = response_format.get("schema")
        if isinstance(name, str) and name.strip() and isinstance(schema, dict):
            return dict(response_format)

        raise ValueError(
            "Invalid json_schema response_format. Provide either {type, json_schema: {name, schema}} "
            "or {type, name, schema}."
        )

    def _ensure_openai_client(self) -> AsyncOpenAI:
        if self._openai_client is not None:
            return self._openai_client
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise LLMClientConfigError("OPENAI_API_KEY not configured")
        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": float(_DEFAULT_TIMEOUT),
            "max_retries": _MAX_RETRIES,
        }
        base_url = os.getenv("OPENAI_BASE_URL")
        if base_url:
            client_kwargs["base_url"] = base_url
        client_class = get_openai_client_class()
        self._openai_client = client_class(**client_kwargs)
        return self._openai_client

    async def _generate_with_openai(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        client = self._ensure_openai_client()
        max_tokens = params.max_tokens if params and params.max_tokens else None
        temperature = params.temperature if params else 0.2
        response_format = params.response_format if params else None

        # o-series reasoning models only speak the Responses API and reject temperature.
        if model.lower().startswith("o"):
            request_kwargs: dict[str, Any] = {"model": model, "input": prompt}
            if max_tokens:
                request_kwargs["max_output_tokens"] = max_tokens
            if response_format:
                request_kwargs["text"] = {"format": self._openai_text_format_from_response_format(response_format)}
            try:
                response = await client.responses.create(**request_kwargs)
            except Exception:
                logger.exception("OpenAI responses request failed", extra={"model": model})
                raise
            text = self._extract_response_text(response)
            if text:
                return text
            raise RuntimeError(
                f"OpenAI responses API returned no content (model={model}, status={getattr(response, 'status', None)})"
            )

        completion_kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            completion_kwargs["temperature"] = temperature
        if max_tokens:
            completion_kwargs["max_tokens"] = max_tokens
        if response_format:
            completion_kwargs["response_format"] = response_format

        try:
            completion = await client.chat.completions.create(**completion_kwargs)
        except Exception:
            logger.exception("OpenAI chat completion failed", extra={"model": model})
            raise

        text = None
        if completion and completion.choices:
            text = getattr(completion.choices[0].message, "content", None)
        if text:
            return text
        raise RuntimeError(f"OpenAI chat completion returned no content for model {model}")

    async def _generate_with_gemini(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise LLMClientConfigError("GEMINI_API_KEY not configured")

        if not self._gemini_configured:
            genai.configure(api_key=api_key)
            self._gemini_configured = True

        generation_config: dict[str, Any] = {"temperature": params.temperature if params else 0.2}
        if params and params.max_tokens:
            generation_config["max_output_tokens"] = params.max_tokens
        if params and params.response_format:
            generation_config["response_mime_type"] = "application/json"

        model_name = model if model.startswith("models/") else f"models/{model}"
        model_client = genai.GenerativeModel(model_name=model_name, generation_config=generation_config)
        try:
            result = await model_client.generate_content_async(prompt, request_options={"timeout": _DEFAULT_TIMEOUT})
        except Exception:
            logger.exception("Gemini generation failed", extra={"model": model})
            raise

        text = None
        candidates = getattr(result, "candidates", None)
        if candidates:
            parts = getattr(candidates[0].content, "parts", None) if candidates[0].content else None
            if parts and getattr(parts[0], "text", None):
                text = parts[0].text
        if text:
            return text
        raise RuntimeError(f"Gemini returned no content for model {model}")

    async def _generate_with_anthropic(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMClientConfigError("ANTHROPIC_API_KEY not configured")

        if not self._anthropic_client:
            self._anthropic_client = AsyncAnthropic(api_key=api_key, max_retries=_MAX_RETRIES)

        try:
            response = await self._anthropic_client.messages.create(
                model=model,
                max_tokens=params.max_tokens if params and params.max_tokens else 4096,
                temperature=params.temperature if params else 0.2,
                messages=[{"role": "user", "content": prompt}],
                timeout=_DEFAULT_TIMEOUT,
            )
        except Exception:
            logger.exception("Anthropic generation failed", extra={"model": model})
            raise

        text_parts = [content.text for content in response.content if getattr(content, "text", None)]
        if text_parts:
            return "".join(text_parts)
        raise RuntimeError(f"Anthropic returned no content for model {model}")

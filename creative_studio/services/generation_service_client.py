from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from creative_studio.config import settings
from creative_studio.schemas.generation_service import (
    GenerationServiceErrorEnvelope,
    ImageToVideoTaskCreateIn,
    MusicTaskCreateIn,
    ProviderTaskOut,
    TextToImageTaskCreateIn,
    VoiceoverTaskCreateIn,
)

logger = logging.getLogger(__name__)


class GenerationServiceConfigError(RuntimeError):
    pass


@dataclass
class GenerationServiceRequestError(RuntimeError):
    message: str
    status_code: int | None = None
    error_code: str | None = None
    request_id: str | None = None
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        code = f" code={self.error_code}" if self.error_code else ""
        status = f" status={self.status_code}" if self.status_code is not None else ""
        req = f" request_id={self.request_id}" if self.request_id else ""
        return f"{self.message}{status}{code}{req}".strip()


class GenerationServiceClient:
    """Async client for the hosted image/video generation task API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        resolved_base = (base_url or settings.GENERATION_SERVICE_BASE_URL or "").strip()
        resolved_key = (api_key or settings.GENERATION_SERVICE_API_KEY or "").strip()
        if not resolved_base:
            raise GenerationServiceConfigError("GENERATION_SERVICE_BASE_URL is required")
        if not resolved_key:
            raise GenerationServiceConfigError("GENERATION_SERVICE_API_KEY is required")
        self.base_url = resolved_base.rstrip("/")
        self.api_key = resolved_key
        self.timeout_seconds = float(timeout_seconds or settings.GENERATION_SERVICE_TIMEOUT_SECONDS or 30.0)
        self._transport = transport

    async def create_text_to_image(self, *, payload: TextToImageTaskCreateIn) -> ProviderTaskOut:
        body = await self._request_json(
            "POST",
            "/v1/text_to_image",
            json_payload=payload.model_dump(mode="json", exclude_none=True),
        )
        return self._parse_model(ProviderTaskOut, body, context="create_text_to_image")

    async def create_image_to_video(self, *, payload: ImageToVideoTaskCreateIn) -> ProviderTaskOut:
        body = await self._request_json(
            "POST",
            "/v1/image_to_video",
            json_payload=payload.model_dump(mode="json", exclude_none=True),
        )
        return self._parse_model(ProviderTaskOut, body, context="create_image_to_video")

    async def create_music(self, *, payload: MusicTaskCreateIn) -> ProviderTaskOut:
        body = await self._request_json(
            "POST",
            "/v1/music",
            json_payload=payload.model_dump(mode="json", exclude_none=True),
        )
        return self._parse_model(ProviderTaskOut, body, context="create_music")

    async def create_voiceover(self, *, payload: VoiceoverTaskCreateIn) -> ProviderTaskOut:
        body = await self._request_json(
            "POST",
            "/v1/voiceover",
            json_payload=payload.model_dump(mode="json", exclude_none=True),
        )
        return self._parse_model(ProviderTaskOut, body, context="create_voiceover")

    async def get_task(self, *, task_id: str) -> ProviderTaskOut:
        body = await self._request_json("GET", f"/v1/tasks/{task_id}")
        return self._parse_model(ProviderTaskOut, body, context="get_task")

    async def cancel_task(self, *, task_id: str) -> None:
        await self._request_json("DELETE", f"/v1/tasks/{task_id}", expect_body=False)

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        json_payload: dict[str, Any] | None = None,
        expect_body: bool = True,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.request(
                    method=method,
                    url=path,
                    json=json_payload,
                    headers=self._headers(),
                )
        except httpx.RequestError as exc:
            logger.warning(
                "Generation service request failed",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise GenerationServiceRequestError(
                f"Generation service request error for {method} {path}: {exc}"
            ) from exc

        if resp.status_code >= 400:
            self._raise_request_error(resp)

        if not expect_body or resp.status_code == 204 or not resp.content:
            return {}

        try:
            data = resp.json()
        except ValueError as exc:
            raise GenerationServiceRequestError(
                f"Generation service returned non-JSON payload for {method} {path}",
                status_code=resp.status_code,
            ) from exc

        if not isinstance(data, dict):
            raise GenerationServiceRequestError(
                f"Generation service returned non-object JSON payload for {method} {path}",
                status_code=resp.status_code,
            )
        return data

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _raise_request_error(self, resp: httpx.Response) -> None:
        details: dict[str, Any] | None = None
        message = f"Generation service request failed ({resp.status_code})"
        error_code: str | None = None
        request_id: str | None = resp.headers.get("x-request-id")

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            try:
                envelope = GenerationServiceErrorEnvelope.model_validate(payload)
            except ValidationError:
                envelope = None

            if envelope and envelope.error:
                if envelope.error.message:
                    message = envelope.error.message
                error_code = envelope.error.code
                request_id = envelope.error.request_id or request_id
                details = envelope.error.details
            else:
                details = payload

        raise GenerationServiceRequestError(
            message=message,
            status_code=resp.status_code,
            error_code=error_code,
            request_id=request_id,
            details=details,
        )

    def _parse_model(self, model_cls, payload: dict[str, Any], *, context: str):
        try:
            return model_cls.model_validate(payload)
        except ValidationError as exc:
            raise GenerationServiceRequestError(
                f"Generation service payload validation failed for {context}: {exc}",
                details={"payload": payload},
            ) from exc

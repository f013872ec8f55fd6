from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from creative_studio.generation.errors import InvalidRequestError
from creative_studio.generation.types import JobHandle, JobStatus, Outcome

RequestT = TypeVar("RequestT", bound=BaseModel)


class GenerationPlugin(ABC, Generic[RequestT]):
    """
    One generation capability behind the uniform submit/poll contract.

    Subclasses declare `plugin_id`, a human-readable `name` and `description`, and a
    pydantic `RequestModel` describing the request shape. Plugins that hand back a
    job handle set `supports_polling` and implement `poll_status`.
    """

    plugin_id: ClassVar[str]
    name: ClassVar[str]
    description: ClassVar[str] = ""
    RequestModel: ClassVar[type[BaseModel]]
    supports_polling: ClassVar[bool] = False

    def describe_request(self) -> dict[str, Any]:
        return self.RequestModel.model_json_schema()

    def get_defaults(self) -> dict[str, Any]:
        defaults: dict[str, Any] = {}
        for field_name, field_info in self.RequestModel.model_fields.items():
            if field_info.is_required():
                continue
            defaults[field_name] = field_info.get_default(call_default_factory=True)
        return defaults

    def parse_request(self, raw: Any) -> RequestT:
        if isinstance(raw, self.RequestModel):
            return raw  # type: ignore[return-value]
        try:
            return self.RequestModel.model_validate(raw)  # type: ignore[return-value]
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'request'}: {err['msg']}" for err in exc.errors()
            )
            raise InvalidRequestError(f"Invalid request for {self.plugin_id}: {problems}") from exc

    @abstractmethod
    async def submit(self, request: RequestT) -> Outcome:
        raise NotImplementedError

    async def poll_status(self, handle: JobHandle) -> JobStatus:
        raise NotImplementedError(f"{self.plugin_id} does not produce pollable jobs")

    async def cancel(self, handle: JobHandle) -> None:
        """Best-effort remote cancellation; most providers have nothing to cancel."""
        return None

    def summary(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "name": self.name,
            "description": self.description,
            "supports_polling": self.supports_polling,
        }

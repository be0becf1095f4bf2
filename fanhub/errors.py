"""Error taxonomy shared by provisioning, control and the HTTP layer.

Row-level problems in an import are never raised; they are collected as
rejections.  Everything here is a call-level failure and becomes the sole
result of the request.
"""

from __future__ import annotations

from typing import Any


class FanHubError(Exception):
    """Base class; ``status_code`` is the HTTP status the API maps it to."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message}
        body.update(self.details)
        return body


class MalformedInput(FanHubError):
    """The batch payload could not be parsed at all."""

    status_code = 400


class ValidationError(FanHubError):
    """A single-call input is missing or out of range (e.g. negative rpm)."""

    status_code = 400


class DuplicateModel(FanHubError):
    """A fan model already exists for the (address, port) pair."""

    status_code = 400


class CapacityExceeded(FanHubError):
    """An import would put more fans on a model than its ``totalDevices``."""

    status_code = 400


class Conflict(FanHubError):
    status_code = 409


class ReferenceNotFound(FanHubError):
    status_code = 404


class FloorNotFound(ReferenceNotFound):
    def __init__(self, floor_id: str) -> None:
        super().__init__("Floor not found", {"floorId": floor_id})


class FanModelNotFound(ReferenceNotFound):
    def __init__(self, model_id: str) -> None:
        super().__init__(f"Fan model not found: {model_id}", {"modelId": model_id})


class FanNotFound(ReferenceNotFound):
    def __init__(self, fan_id: str) -> None:
        super().__init__("Fan not found", {"fanId": fan_id})

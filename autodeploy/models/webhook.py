"""Webhook request/response models."""

from enum import Enum

from pydantic import BaseModel


class WebhookAction(str, Enum):
    """What the launcher did with an event."""

    DEPLOY = "deploy"
    IGNORED = "ignored"
    ACKNOWLEDGED = "acknowledged"


class WebhookResponse(BaseModel):
    """JSON body returned to the webhook sender."""

    success: bool = True
    message: str
    action: WebhookAction
    deployment_id: int | None = None
    project: str | None = None

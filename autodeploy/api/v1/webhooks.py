"""Webhook ingress."""

from typing import Annotated

from fastapi import APIRouter, Header, Request

from autodeploy.api.deps import LauncherDep
from autodeploy.models.webhook import WebhookResponse

router = APIRouter()


@router.post(
    "/github",
    response_model=WebhookResponse,
    response_model_exclude_none=True,
    summary="Receive a GitHub webhook",
    description=(
        "Verifies the payload signature and starts a deployment for pushes to "
        "the project's main branch or published releases. Returns immediately; "
        "the pipeline runs in the background."
    ),
)
async def github_webhook(
    request: Request,
    launcher: LauncherDep,
    x_github_event: Annotated[str | None, Header()] = None,
    x_hub_signature_256: Annotated[str | None, Header()] = None,
) -> WebhookResponse:
    """Process a GitHub webhook delivery."""
    # Signatures are computed over the raw bytes, so the body is not parsed here
    body = await request.body()
    return await launcher.process_webhook(x_github_event, x_hub_signature_256, body)

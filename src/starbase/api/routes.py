"""HTTP routes: web chat turn/history, usage report, Discord interactions."""

from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError

from starbase.app import StarbaseApp
from starbase.channels.models import TurnBody, TurnResponse
from starbase.errors import AuthError, ValidationError
from starbase.reporting import usage_report

router = APIRouter()


def get_starbase(request: Request) -> StarbaseApp:
    return request.app.state.starbase


def get_user_id(request: Request, starbase: StarbaseApp = Depends(get_starbase)) -> Optional[str]:
    """Identity asserted by the upstream auth proxy."""
    return request.headers.get(starbase.config.server.user_header) or None


@router.post("/api/agent", response_model=TurnResponse)
async def post_turn(
    request: Request,
    user_id: Optional[str] = Depends(get_user_id),
    starbase: StarbaseApp = Depends(get_starbase),
) -> TurnResponse:
    if not user_id:
        raise AuthError("Unauthorized")
    try:
        body = TurnBody.model_validate(json.loads(await request.body()))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise ValidationError("Invalid JSON body") from e
    return await starbase.web.send(user_id, body)


@router.get("/api/agent")
async def get_history(
    conversation_id: Optional[str] = None,
    user_id: Optional[str] = Depends(get_user_id),
    starbase: StarbaseApp = Depends(get_starbase),
) -> dict[str, Any]:
    history = await starbase.web.history(user_id, conversation_id)
    return history.model_dump(mode="json")


@router.get("/api/agent/usage")
async def get_usage(
    period: str = "month",
    user_id: Optional[str] = Depends(get_user_id),
    starbase: StarbaseApp = Depends(get_starbase),
) -> dict[str, Any]:
    if not user_id:
        raise AuthError("Unauthorized")
    return await usage_report(starbase.conversation_repo, user_id, period)


@router.post("/api/discord")
async def discord_interaction(
    request: Request,
    starbase: StarbaseApp = Depends(get_starbase),
) -> dict[str, Any]:
    if not starbase.config.discord.enabled:
        raise HTTPException(status_code=404, detail="Discord channel disabled")
    body = await request.body()
    return await starbase.discord.handle(
        body,
        request.headers.get("x-signature-ed25519", ""),
        request.headers.get("x-signature-timestamp", ""),
    )

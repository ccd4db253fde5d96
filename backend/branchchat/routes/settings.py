"""Endpoints for retrieving and updating runtime settings."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from ..config import get_settings, patch_settings


router = APIRouter(prefix="/api/settings", tags=["settings"])


def _public(settings) -> dict[str, object]:
    data = settings.model_dump(mode="json")
    data["LLM"].pop("api_key", None)
    data["LLM"]["api_key_set"] = bool(settings.LLM.api_key)
    return data


@router.get("")
async def read_settings() -> dict[str, object]:
    """Return current application settings, without the API key."""

    return _public(get_settings())


@router.patch("")
async def update_settings(payload: dict) -> dict[str, object]:
    """Apply partial updates to settings."""

    try:
        return _public(patch_settings(payload))
    except (ValidationError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

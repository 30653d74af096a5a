"""Funnel stage registry routes."""

from fastapi import APIRouter

from src.agents.stage_registry import list_stages, HANDOFF_ORDER

router = APIRouter(prefix="/api/funnel", tags=["funnel"])


@router.get("/stages")
def get_stages():
    return {
        "stages": list_stages(),
        "handoff_order": HANDOFF_ORDER,
    }

"""Agent turn, decision log, error log, and agent config routes."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Optional

from src.agents.error_handler import get_errors, resolve_error
from src.agents.sdr_agent import SDRAgent, get_agent
from src.db import models

router = APIRouter(prefix="/api/agent", tags=["agent"])

SEVERITIES = {"warning", "error", "critical"}


class RespondRequest(BaseModel):
    # Required fields are checked by the engine so a missing one is a 400
    conversation_id: Optional[str] = None
    incoming_message: Optional[str] = None
    conversation_history: Optional[list] = []
    current_stage_id: Optional[str] = None
    persona_id: Optional[str] = None


class ConfigUpdate(BaseModel):
    is_active: Optional[bool] = None
    system_prompt: Optional[str] = None
    video_url: Optional[str] = None
    site_url: Optional[str] = None
    payment_link: Optional[str] = None
    auto_reply_delay_seconds: Optional[int] = None
    default_persona_id: Optional[str] = None


@router.post("/respond")
def respond(req: RespondRequest, agent: SDRAgent = Depends(get_agent)):
    try:
        return agent.process_turn(req.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/logs")
def list_logs(conversation_id: str = None, limit: int = Query(50, ge=1, le=500)):
    return models.list_ai_logs(conversation_id=conversation_id, limit=limit)


@router.get("/errors")
def list_errors(conversation_id: str = None, severity: str = None, unresolved_only: bool = True):
    if severity and severity not in SEVERITIES:
        raise HTTPException(status_code=400, detail=f"severity must be one of {sorted(SEVERITIES)}")
    return get_errors(conversation_id=conversation_id, severity=severity,
                      unresolved_only=unresolved_only)


@router.post("/errors/{error_id}/resolve")
def mark_error_resolved(error_id: int):
    if not resolve_error(error_id):
        raise HTTPException(status_code=404, detail="Agent error not found")
    return {"id": error_id, "resolved": True}


@router.get("/config")
def get_config():
    result = models.get_ai_config()
    if not result:
        raise HTTPException(status_code=404, detail="Agent config not found")
    return result


@router.put("/config")
def update_config(data: ConfigUpdate):
    update_data = {k: v for k, v in data.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "is_active" in update_data:
        update_data["is_active"] = 1 if update_data["is_active"] else 0
    if update_data.get("auto_reply_delay_seconds", 0) < 0:
        raise HTTPException(status_code=400, detail="auto_reply_delay_seconds must be >= 0")
    if "default_persona_id" in update_data and not models.get_persona(update_data["default_persona_id"]):
        raise HTTPException(status_code=400, detail="Default persona not found")
    return models.update_ai_config(update_data)

"""Conversation routes. Operators use PATCH to pause/resume the agent or move a stage by hand."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from src.agents.stage_registry import stage_order
from src.db import models

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


class ConversationCreate(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    lead_name: Optional[str] = None
    current_stage_id: Optional[str] = None
    ai_paused: Optional[bool] = False


class ConversationUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    lead_name: Optional[str] = None
    current_stage_id: Optional[str] = None
    ai_paused: Optional[bool] = None
    ai_handoff_reason: Optional[str] = None


def _check_stage(stage_id: Optional[str]):
    if stage_id is not None and stage_order(stage_id) is None:
        raise HTTPException(status_code=400, detail=f"Unknown stage label id: {stage_id}")


@router.post("")
def create_conversation(conv: ConversationCreate):
    _check_stage(conv.current_stage_id)
    if conv.id and models.get_conversation(conv.id):
        raise HTTPException(status_code=409, detail="Conversation already exists")
    return models.create_conversation(conv.model_dump())


@router.get("/{conversation_id}")
def get_conversation(conversation_id: str):
    result = models.get_conversation(conversation_id)
    if not result:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return result


@router.patch("/{conversation_id}")
def update_conversation(conversation_id: str, data: ConversationUpdate):
    update_data = {k: v for k, v in data.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    _check_stage(update_data.get("current_stage_id"))
    if "ai_paused" in update_data:
        update_data["ai_paused"] = 1 if update_data["ai_paused"] else 0
    result = models.update_conversation(conversation_id, update_data)
    if not result:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return result

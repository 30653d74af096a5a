"""Persona routes."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from src.db import models

router = APIRouter(prefix="/api/personas", tags=["personas"])


class PersonaCreate(BaseModel):
    name: str
    system_prompt: str
    persona_name: Optional[str] = None
    description: Optional[str] = None
    offer_description: Optional[str] = None
    target_audience: Optional[str] = None
    tone: Optional[str] = None
    video_url: Optional[str] = None
    site_url: Optional[str] = None
    payment_link: Optional[str] = None
    is_active: Optional[bool] = True


@router.post("")
def create_persona(persona: PersonaCreate):
    return models.create_persona(persona.model_dump())


@router.get("")
def list_personas(active_only: bool = False):
    return models.list_personas(active_only=active_only)


@router.get("/{persona_id}")
def get_persona(persona_id: str):
    result = models.get_persona(persona_id)
    if not result:
        raise HTTPException(status_code=404, detail="Persona not found")
    return result

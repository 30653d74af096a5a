"""
Per-invocation agent settings.

The engine never reads the config tables itself: the caller loads an
AgentSettings for the requested persona and hands it in, so each turn runs
against one consistent snapshot and tests can build settings directly.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.config import DEFAULT_REPLY_DELAY_SECONDS
from src.db import models

logger = logging.getLogger("sdr.agents.settings")


@dataclass(frozen=True)
class AgentSettings:
    is_active: bool = True
    playbook: Optional[str] = None
    persona_id: Optional[str] = None
    persona_name: Optional[str] = None
    offer_description: Optional[str] = None
    tone: Optional[str] = None
    video_url: Optional[str] = None
    site_url: Optional[str] = None
    payment_link: Optional[str] = None
    reply_delay_seconds: int = DEFAULT_REPLY_DELAY_SECONDS
    inactive_reason: Optional[str] = None

    @classmethod
    def inactive(cls, reason: str) -> "AgentSettings":
        return cls(is_active=False, inactive_reason=reason)


def _pick(persona: Optional[dict], config: dict, field: str) -> Optional[str]:
    """Persona value wins over the config row; blank strings count as unset."""
    for source in (persona or {}, config):
        value = source.get(field)
        if value:
            return value
    return None


def load_agent_settings(persona_id: str = None) -> AgentSettings:
    """Build settings from the ai_config row and the selected persona.

    Persona resolution: the requested persona, else the config's default
    persona, else no persona (config prompt/URLs, then the built-in playbook).
    An explicitly requested persona that is missing or disabled makes the
    agent inactive for this turn.
    """
    config = models.get_ai_config()
    if not config or not config.get("is_active"):
        return AgentSettings.inactive("AI agent is not active")

    persona = None
    if persona_id:
        persona = models.get_persona(persona_id)
        if not persona or not persona.get("is_active"):
            return AgentSettings.inactive(f"Persona '{persona_id}' not found or inactive")
    elif config.get("default_persona_id"):
        persona = models.get_persona(config["default_persona_id"])
        if not persona or not persona.get("is_active"):
            logger.warning("Default persona %s unavailable, using config prompt",
                           config["default_persona_id"])
            persona = None

    delay = config.get("auto_reply_delay_seconds")
    return AgentSettings(
        is_active=True,
        playbook=_pick(persona, config, "system_prompt"),
        persona_id=persona["id"] if persona else None,
        persona_name=(persona or {}).get("persona_name"),
        offer_description=(persona or {}).get("offer_description"),
        tone=(persona or {}).get("tone"),
        video_url=_pick(persona, config, "video_url"),
        site_url=_pick(persona, config, "site_url"),
        payment_link=_pick(persona, config, "payment_link"),
        reply_delay_seconds=delay if delay is not None else DEFAULT_REPLY_DELAY_SECONDS,
    )

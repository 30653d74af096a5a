"""
Unit tests for loading per-turn agent settings from config and personas.
"""

from src.agents.agent_settings import load_agent_settings
from src.db import models


def _persona(**fields):
    data = {"name": "Inglês", "system_prompt": "Você vende cursos de inglês.",
            "persona_name": "Bia", "video_url": "https://v.test/ingles"}
    data.update(fields)
    return models.create_persona(data)


def test_default_config_is_active(test_db):
    settings = load_agent_settings()
    assert settings.is_active
    assert settings.persona_id is None
    assert settings.playbook is None
    assert settings.reply_delay_seconds == 5


def test_inactive_config(test_db):
    models.update_ai_config({"is_active": 0})
    settings = load_agent_settings()
    assert not settings.is_active
    assert settings.inactive_reason == "AI agent is not active"


def test_persona_overrides_config(test_db):
    persona = _persona()
    models.update_ai_config({"system_prompt": "Config prompt", "video_url": "https://v.test/config",
                             "site_url": "https://site.test", "auto_reply_delay_seconds": 2})
    settings = load_agent_settings(persona["id"])
    assert settings.persona_id == persona["id"]
    assert settings.persona_name == "Bia"
    assert settings.playbook == "Você vende cursos de inglês."
    assert settings.video_url == "https://v.test/ingles"
    # Persona has no site_url, so the config value applies
    assert settings.site_url == "https://site.test"
    assert settings.reply_delay_seconds == 2


def test_unknown_persona_is_config_error(test_db):
    settings = load_agent_settings("per_missing")
    assert not settings.is_active
    assert "per_missing" in settings.inactive_reason


def test_inactive_persona_is_config_error(test_db):
    persona = _persona(is_active=False)
    assert not load_agent_settings(persona["id"]).is_active


def test_default_persona_used_when_none_requested(test_db):
    persona = _persona()
    models.update_ai_config({"default_persona_id": persona["id"]})
    settings = load_agent_settings()
    assert settings.persona_id == persona["id"]


def test_inactive_default_persona_falls_back_to_config(test_db):
    persona = _persona(is_active=False)
    models.update_ai_config({"default_persona_id": persona["id"], "system_prompt": "Config prompt"})
    settings = load_agent_settings()
    assert settings.is_active
    assert settings.persona_id is None
    assert settings.playbook == "Config prompt"

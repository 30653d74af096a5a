"""
Unit tests for decision building and the audit append.
"""

from src.agents.agent_settings import AgentSettings
from src.agents.classifier import Classification, FALLBACK_RESPONSE, MAX_RESPONSE_CHARS
from src.agents.decision_emitter import (
    DecisionEmitter, cap_response, FALLBACK_SUMMARY, CONFIDENCE_PLACEHOLDER,
)
from src.agents.progression import advance
from src.agents.stage_registry import stage_by_order


FULL_SETTINGS = AgentSettings(video_url="https://v.test/demo", site_url="https://site.test",
                              reply_delay_seconds=3)
BARE_SETTINGS = AgentSettings()


def _classification(**fields):
    base = {"response": "Olha só esse vídeo!", "proposed_stage": "STAGE_2"}
    base.update(fields)
    return Classification(**base)


class _RecordingWriter:
    def __init__(self, fail=False):
        self.entries = []
        self.fail = fail

    def __call__(self, entry):
        self.entries.append(entry)
        if self.fail:
            raise RuntimeError("disk full")
        return len(self.entries)


# ─── RESOURCE GATING ─────────────────────────────────────────

def test_video_flag_dropped_without_url():
    c = _classification(should_send_video=True, should_send_site=True)
    d = DecisionEmitter(audit_writer=_RecordingWriter()).build(
        advance(stage_by_order(1), "STAGE_2"), c, BARE_SETTINGS)
    assert d.should_send_video is False
    assert d.should_send_site is False
    assert d.video_url is None


def test_video_flag_kept_with_url():
    c = _classification(should_send_video=True)
    d = DecisionEmitter(audit_writer=_RecordingWriter()).build(
        advance(stage_by_order(1), "STAGE_2"), c, FULL_SETTINGS)
    assert d.should_send_video is True
    assert d.video_url == "https://v.test/demo"
    assert d.should_send_site is False
    assert d.site_url is None
    assert d.delay_seconds == 3


# ─── HANDOFF SUMMARY ─────────────────────────────────────────

def test_handoff_without_summary_gets_placeholder():
    c = _classification(should_handoff=True)
    d = DecisionEmitter(audit_writer=_RecordingWriter()).build(
        advance(stage_by_order(2), "STAGE_2", should_handoff=True), c, FULL_SETTINGS)
    assert d.needs_human
    assert d.stage.order == 5
    assert d.conversation_summary == FALLBACK_SUMMARY
    assert d.handoff_reason == "Lead reached stage Handoff"


def test_handoff_keeps_classifier_summary():
    c = _classification(should_handoff=True, conversation_summary="Ana quer fechar o plano anual",
                        handoff_reason="Pediu para falar com consultor")
    d = DecisionEmitter(audit_writer=_RecordingWriter()).build(
        advance(stage_by_order(3), "STAGE_4", should_handoff=True), c, FULL_SETTINGS)
    assert d.conversation_summary == "Ana quer fechar o plano anual"
    assert d.handoff_reason == "Pediu para falar com consultor"


def test_no_handoff_no_placeholder():
    d = DecisionEmitter(audit_writer=_RecordingWriter()).build(
        advance(stage_by_order(1), "STAGE_2"), _classification(), FULL_SETTINGS)
    assert not d.needs_human
    assert d.conversation_summary is None


# ─── RESPONSE ────────────────────────────────────────────────

def test_cap_response_cuts_on_word_boundary():
    text = "palavra " * 100
    capped = cap_response(text)
    assert len(capped) <= MAX_RESPONSE_CHARS
    assert capped.endswith("palavra")


def test_short_response_untouched():
    assert cap_response("  Oi!  ") == "Oi!"


def test_to_response_payload():
    d = DecisionEmitter(audit_writer=_RecordingWriter()).build(
        advance(stage_by_order(1), "STAGE_4"), _classification(lead_name="Ana"), FULL_SETTINGS)
    payload = d.to_response()
    assert payload["handled"] is True
    assert payload["stage"] == "STAGE_2"
    assert payload["label_id"] == "13"
    assert payload["funnel_stage"] == "presentation"
    assert payload["lead_name"] == "Ana"
    assert payload["transition_rule"] == "clamped"
    assert payload["fallback_reason"] is None


# ─── FALLBACK ────────────────────────────────────────────────

def test_fallback_decision():
    d = DecisionEmitter(audit_writer=_RecordingWriter()).build_fallback(
        stage_by_order(3), FULL_SETTINGS, "malformed")
    assert d.stage.order == 3
    assert d.response == FALLBACK_RESPONSE
    assert not d.needs_human
    assert not d.should_send_video
    assert not d.should_send_site
    assert not d.should_handoff
    assert d.detected_intent == "STAGE_3 (fallback):malformed"
    assert d.fallback_reason == "malformed"
    assert not d.is_bot_message
    assert d.to_response()["is_bot_loop"] is False


# ─── AUDIT ───────────────────────────────────────────────────

def test_record_writes_one_entry():
    writer = _RecordingWriter()
    emitter = DecisionEmitter(audit_writer=writer)
    d = emitter.emit("conv_1", "Quero ver", advance(stage_by_order(1), "STAGE_2"),
                     _classification(bant_score={"budget": True}), FULL_SETTINGS)
    assert len(writer.entries) == 1
    entry = writer.entries[0]
    assert entry["conversation_id"] == "conv_1"
    assert entry["incoming_message"] == "Quero ver"
    assert entry["applied_label_id"] == d.label_id == "13"
    assert entry["detected_intent"] == "STAGE_2"
    assert entry["confidence_score"] == CONFIDENCE_PLACEHOLDER
    assert entry["needs_human"] is False


def test_failed_audit_write_does_not_raise(test_db):
    writer = _RecordingWriter(fail=True)
    emitter = DecisionEmitter(audit_writer=writer)
    d = emitter.emit("conv_1", "Oi", advance(stage_by_order(1), "STAGE_1"),
                     _classification(), FULL_SETTINGS)
    assert d.response
    # One attempt only
    assert len(writer.entries) == 1

    from src.agents.error_handler import get_errors
    errors = get_errors(conversation_id="conv_1")
    assert len(errors) == 1
    assert errors[0]["phase"] == "audit"

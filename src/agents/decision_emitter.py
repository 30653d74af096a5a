"""
SDR Agent - Decision Emitter
Turns a validated transition plus the classifier's auxiliary fields into the
final Decision, and appends the audit row for it.

Guarantees on every Decision:
- should_send_video / should_send_site are false when the matching URL is not
  configured, whatever the classifier asked for
- a Decision that needs a human always carries a non-empty summary
- the outbound reply fits in MAX_RESPONSE_CHARS
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from src.agents.agent_settings import AgentSettings
from src.agents.classifier import Classification, FALLBACK_RESPONSE, MAX_RESPONSE_CHARS
from src.agents.error_handler import safe_execute
from src.agents.progression import Transition, hold
from src.agents.stage_registry import Stage
from src.db import models

logger = logging.getLogger("sdr.agents.decision_emitter")

FALLBACK_SUMMARY = "Handoff requested; no summary provided by classifier"
CONFIDENCE_PLACEHOLDER = 0.9


@dataclass(frozen=True)
class Decision:
    stage: Stage
    response: str
    needs_human: bool
    should_handoff: bool = False
    should_send_video: bool = False
    should_send_site: bool = False
    video_url: Optional[str] = None
    site_url: Optional[str] = None
    lead_name: Optional[str] = None
    handoff_reason: Optional[str] = None
    conversation_summary: Optional[str] = None
    bant_score: Optional[dict] = None
    delay_seconds: int = 0
    is_bot_message: bool = False
    transition_rule: str = ""
    detected_intent: str = ""
    fallback_reason: Optional[str] = None

    @property
    def label_id(self) -> str:
        return self.stage.id

    def to_response(self) -> dict:
        return {
            "handled": True,
            "response": self.response,
            "stage": self.stage.key.value,
            "label_id": self.stage.id,
            "funnel_stage": self.stage.funnel_stage,
            "lead_name": self.lead_name,
            "should_send_video": self.should_send_video,
            "should_send_site": self.should_send_site,
            "should_handoff": self.should_handoff,
            "handoff_reason": self.handoff_reason,
            "conversation_summary": self.conversation_summary,
            "needs_human": self.needs_human,
            "video_url": self.video_url,
            "site_url": self.site_url,
            "bant_score": self.bant_score,
            "delay_seconds": self.delay_seconds,
            "is_bot_message": self.is_bot_message,
            "is_bot_loop": False,
            "transition_rule": self.transition_rule,
            "fallback_reason": self.fallback_reason,
        }


def cap_response(text: str, limit: int = MAX_RESPONSE_CHARS) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:-")


class DecisionEmitter:
    """Builds Decisions and writes their audit rows.

    audit_writer takes the audit entry dict; it defaults to the ai_logs table.
    """

    def __init__(self, audit_writer: Callable[[dict], object] = None):
        self.audit_writer = audit_writer or models.insert_ai_log

    def build(self, transition: Transition, classification: Classification,
              settings: AgentSettings, is_bot_message: bool = False) -> Decision:
        needs_human = transition.needs_human
        send_video = classification.should_send_video and bool(settings.video_url)
        send_site = classification.should_send_site and bool(settings.site_url)

        summary = classification.conversation_summary
        reason = classification.handoff_reason
        if needs_human:
            if not summary:
                summary = FALLBACK_SUMMARY
            if not reason:
                reason = f"Lead reached stage {transition.to_stage.name}"

        return Decision(
            stage=transition.to_stage,
            response=cap_response(classification.response),
            needs_human=needs_human,
            should_handoff=classification.should_handoff,
            should_send_video=send_video,
            should_send_site=send_site,
            video_url=settings.video_url if send_video else None,
            site_url=settings.site_url if send_site else None,
            lead_name=classification.lead_name,
            handoff_reason=reason,
            conversation_summary=summary,
            bant_score=classification.bant_score,
            delay_seconds=settings.reply_delay_seconds,
            is_bot_message=is_bot_message,
            transition_rule=transition.rule,
            detected_intent=transition.summary(),
        )

    def build_fallback(self, current: Stage, settings: AgentSettings, reason: str) -> Decision:
        """Safe default: keep the stage, send a generic greeting, every boolean flag false."""
        transition = hold(current)
        return Decision(
            stage=current,
            response=FALLBACK_RESPONSE,
            needs_human=False,
            delay_seconds=settings.reply_delay_seconds,
            transition_rule=transition.rule,
            detected_intent=f"{transition.summary()}:{reason}",
            fallback_reason=reason,
        )

    def record(self, conversation_id: str, incoming_message: str, decision: Decision):
        """Append the audit row once. A failed write is logged, never raised."""
        entry = {
            "conversation_id": conversation_id,
            "incoming_message": incoming_message,
            "ai_response": decision.response,
            "detected_intent": decision.detected_intent,
            "applied_label_id": decision.label_id,
            "confidence_score": CONFIDENCE_PLACEHOLDER,
            "needs_human": decision.needs_human,
            "bant_score": decision.bant_score,
        }
        return safe_execute(
            self.audit_writer, args=(entry,),
            phase="audit", component="decision_emitter",
            conversation_id=conversation_id, fallback=None,
        )

    def emit(self, conversation_id: str, incoming_message: str, transition: Transition,
             classification: Classification, settings: AgentSettings,
             is_bot_message: bool = False) -> Decision:
        decision = self.build(transition, classification, settings, is_bot_message)
        self.record(conversation_id, incoming_message, decision)
        return decision

"""
SDR Agent - Turn Engine
Processes one inbound WhatsApp message for one conversation.

    request -> settings gate -> conversation lock -> terminal/paused/bot-loop short-circuit
            -> classifier -> progression -> decision -> stage CAS -> audit

The conversation's stored stage is authoritative once the row exists; the
request's current_stage_id only seeds new (or stage-less) conversations. The
stage write is a compare-and-set against the value read under the lock, so a
concurrent writer in another process turns this turn into a "stale_stage"
no-op instead of a double advance.

Request:
    {"conversation_id": str, "incoming_message": str,
     "conversation_history": [{"direction": "incoming"|"outgoing", "content": str}],
     "current_stage_id": str|None, "persona_id": str|None}
"""

import logging
import time
from typing import Callable, Optional

from src.agents.agent_settings import AgentSettings, load_agent_settings
from src.agents.bot_detector import is_bot_message, is_bot_loop
from src.agents.classifier import FunnelClassifier, FALLBACK_RESPONSE, normalize_history
from src.agents.conversation_lock import conversation_lock
from src.agents.decision_emitter import Decision, DecisionEmitter
from src.agents.error_handler import log_agent_error
from src.agents.progression import advance
from src.agents.stage_registry import (
    Stage, stage_order, is_handoff_or_beyond, current_stage_or_first,
)
from src.config import ORACLE_TIMEOUT
from src.db import models

logger = logging.getLogger("sdr.agents.sdr_agent")

LOCK_TIMEOUT = ORACLE_TIMEOUT * 3

ALREADY_HANDED_OFF = "already_handed_off"
AI_PAUSED = "ai_paused"
STALE_STAGE = "stale_stage"
CONVERSATION_BUSY = "conversation_busy"
BOT_LOOP = "bot_loop"

BOT_LOOP_HANDOFF_REASON = "Lead is answering with automated replies (bot loop)"

_NOT_HANDLED_MESSAGES = {
    ALREADY_HANDED_OFF: "Conversation is already handled by a human",
    AI_PAUSED: "AI is paused for this conversation",
    STALE_STAGE: "Conversation stage changed while this message was processed",
    CONVERSATION_BUSY: "Another message for this conversation is still being processed",
    BOT_LOOP: "Automated replies in a loop; AI paused for this conversation",
}


class StaleStageError(RuntimeError):
    """Raised when the stage compare-and-set loses to another writer."""
    pass


# The lead still gets the generic greeting for these; nothing is persisted
_GREET_ON = {STALE_STAGE, CONVERSATION_BUSY}


def _not_handled(reason: str, stage: Stage) -> dict:
    return {
        "handled": False,
        "active": True,
        "reason": reason,
        "message": _NOT_HANDLED_MESSAGES[reason],
        "response": FALLBACK_RESPONSE if reason in _GREET_ON else None,
        "stage": stage.key.value,
        "label_id": stage.id,
        "needs_human": reason == ALREADY_HANDED_OFF,
        "is_bot_loop": reason == BOT_LOOP,
    }


class SDRAgent:
    """Request-scoped engine. Holds no per-conversation state between turns."""

    def __init__(self, classifier: FunnelClassifier = None, emitter: DecisionEmitter = None,
                 settings_loader: Callable[[Optional[str]], AgentSettings] = None,
                 store=None):
        self.classifier = classifier or FunnelClassifier()
        self.emitter = emitter or DecisionEmitter()
        self.settings_loader = settings_loader or load_agent_settings
        self.store = store or models

    def process_turn(self, request: dict, settings: AgentSettings = None) -> dict:
        conversation_id = request.get("conversation_id")
        incoming = request.get("incoming_message")
        if not conversation_id or not isinstance(incoming, str) or not incoming.strip():
            raise ValueError("conversation_id and incoming_message are required")

        settings = settings or self.settings_loader(request.get("persona_id"))
        if not settings.is_active:
            logger.info("Agent inactive: %s", settings.inactive_reason,
                        extra={"conversation_id": conversation_id})
            return {"active": False, "handled": False, "error": settings.inactive_reason}

        try:
            with conversation_lock(conversation_id, timeout=LOCK_TIMEOUT):
                return self._process_locked(conversation_id, incoming, request, settings)
        except TimeoutError:
            current = current_stage_or_first(request.get("current_stage_id"))
            log_agent_error(phase="lock", error_message="Timed out waiting for conversation lock",
                            conversation_id=conversation_id, component="sdr_agent")
            return _not_handled(CONVERSATION_BUSY, current)

    def _process_locked(self, conversation_id: str, incoming: str, request: dict,
                        settings: AgentSettings) -> dict:
        start = time.time()
        log_extra = {"conversation_id": conversation_id, "persona_id": settings.persona_id or ""}

        conversation = self.store.ensure_conversation(
            conversation_id, request.get("current_stage_id")
        )
        stored_stage_id = conversation.get("current_stage_id")
        effective_stage_id = stored_stage_id or request.get("current_stage_id")
        current = current_stage_or_first(effective_stage_id)

        order = stage_order(effective_stage_id)
        if order is not None and is_handoff_or_beyond(order):
            logger.info("Skipping turn: conversation already past automation", extra=log_extra)
            return _not_handled(ALREADY_HANDED_OFF, current)
        if conversation.get("ai_paused"):
            logger.info("Skipping turn: AI paused", extra=log_extra)
            return _not_handled(AI_PAUSED, current)

        history = request.get("conversation_history") or []
        if is_bot_loop(incoming, normalize_history(history, incoming)):
            self.store.update_conversation(conversation_id, {
                "ai_paused": 1, "ai_handoff_reason": BOT_LOOP_HANDOFF_REASON,
            })
            logger.warning("Bot loop detected, AI paused", extra=log_extra)
            return _not_handled(BOT_LOOP, current)

        bot_message = is_bot_message(incoming)
        result = self.classifier.classify(
            history, incoming, current, settings,
            is_bot_message=bot_message, conversation_id=conversation_id,
        )

        if not result.is_valid:
            decision = self.emitter.build_fallback(current, settings, result.reason)
            log_agent_error(
                phase="classify", error_message=f"{result.reason}: {result.detail}",
                conversation_id=conversation_id, component="classifier",
            )
            # Timeouts and transport failures leave no trace in the audit log
            if result.reason == "malformed":
                self.emitter.record(conversation_id, incoming, decision)
            return decision.to_response()

        transition = advance(current, result.proposed_stage, result.should_handoff)
        decision = self.emitter.build(transition, result, settings, bot_message)

        try:
            self._write_stage(conversation_id, stored_stage_id, decision)
        except StaleStageError as e:
            log_agent_error(phase="stage_write", error=e, conversation_id=conversation_id,
                            component="sdr_agent", severity="error")
            return _not_handled(STALE_STAGE, current)

        self.emitter.record(conversation_id, incoming, decision)

        logger.info(
            "Turn processed: %s -> %s (%s)%s",
            current.key.value, decision.stage.key.value, decision.transition_rule,
            " [handoff]" if decision.needs_human else "",
            extra={**log_extra, "stage": decision.stage.key.value, "label_id": decision.label_id,
                   "rule": decision.transition_rule,
                   "duration_ms": int((time.time() - start) * 1000)},
        )
        return decision.to_response()

    def _write_stage(self, conversation_id: str, expected_stage_id: Optional[str],
                     decision: Decision):
        extra = {}
        if decision.needs_human:
            extra["ai_paused"] = 1
            extra["ai_handoff_reason"] = decision.handoff_reason
        if decision.lead_name:
            extra["lead_name"] = decision.lead_name

        if not self.store.compare_and_set_stage(
                conversation_id, expected_stage_id, decision.label_id, extra):
            raise StaleStageError(
                f"Conversation {conversation_id} moved away from stage {expected_stage_id!r}"
            )


# ─── MODULE-LEVEL SINGLETON ───────────────────────────────────

_agent_instance = None


def get_agent() -> SDRAgent:
    """Get or create the module-level agent used by the API."""
    global _agent_instance
    if _agent_instance is None:
        _agent_instance = SDRAgent()
    return _agent_instance

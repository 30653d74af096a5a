"""
SDR Agent - Funnel Classifier
Asks the chat-completion model where the lead is in the funnel and drafts the
next reply.

The model's answer is untrusted. parse_classification() turns it into either
a typed Classification or an InvalidClassification; nothing downstream ever
sees the raw JSON. classify() never raises: transport errors and timeouts are
reported as InvalidClassification too, and there is no re-query.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from src.agents.agent_settings import AgentSettings
from src.agents.llm_gateway import get_gateway, LLMError, LLMTimeoutError
from src.agents.stage_registry import STAGES, Stage, HANDOFF_ORDER

logger = logging.getLogger("sdr.agents.classifier")

DEFAULT_PLAYBOOK = """Você é um SDR (pré-vendedor) simpático que atende leads pelo WhatsApp.
Seu objetivo é conduzir o lead pelo funil, uma etapa por vez, criando confiança:
entender quem é o lead, apresentar a oferta, confirmar o interesse e qualificar
(orçamento, autoridade, necessidade e prazo) antes de passar para um consultor.
Escreva mensagens curtas e naturais, sem parecer robô, e faça no máximo uma pergunta por vez."""

FALLBACK_RESPONSE = "Olá! Como posso ajudar? 😊"

MAX_RESPONSE_CHARS = 400
HISTORY_TRANSCRIPT_LIMIT = 30

BANT_KEYS = ("budget", "authority", "need", "timing")

_TRUE_STRINGS = {"true", "yes", "sim", "1"}
_FALSE_STRINGS = {"false", "no", "não", "nao", "0"}
_NULL_STRINGS = {"", "null", "none", "n/a", "unknown", "desconhecido"}


# ─── RESULT TYPES ─────────────────────────────────────────────

@dataclass(frozen=True)
class Classification:
    """A validated oracle answer. proposed_stage may still be unknown to the registry."""
    response: str
    proposed_stage: str
    lead_name: Optional[str] = None
    bant_score: Optional[dict] = None
    should_handoff: bool = False
    should_send_video: bool = False
    should_send_site: bool = False
    handoff_reason: Optional[str] = None
    conversation_summary: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_valid(self) -> bool:
        return True


@dataclass(frozen=True)
class InvalidClassification:
    """The oracle could not be used for this turn.

    reason: "malformed" (unparsable or missing fields), "timeout" or "transport".
    """
    reason: str
    detail: str = ""

    @property
    def is_valid(self) -> bool:
        return False


ClassifierResult = Union[Classification, InvalidClassification]


# ─── PROMPT ASSEMBLY ──────────────────────────────────────────

def _stage_guide() -> str:
    lines = []
    for stage in STAGES:
        if stage.order > HANDOFF_ORDER:
            break
        lines.append(f"- {stage.key.value} ({stage.name}): {stage.objective}")
    return "\n".join(lines)


def _resources_block(settings: AgentSettings) -> str:
    lines = [
        f"- Vídeo de apresentação: {'disponível' if settings.video_url else 'NÃO disponível (should_send_video deve ser false)'}",
        f"- Site/página da oferta: {'disponível' if settings.site_url else 'NÃO disponível (should_send_site deve ser false)'}",
    ]
    if settings.payment_link:
        lines.append(f"- Link de pagamento: {settings.payment_link}")
    return "\n".join(lines)


def _history_transcript(history: list) -> str:
    recent = history[-HISTORY_TRANSCRIPT_LIMIT:]
    if not recent:
        return "(primeira mensagem do lead)"
    return "\n".join(
        f"{'Lead' if m.get('direction') == 'incoming' else 'Você'}: {m.get('content') or ''}"
        for m in recent
    )


def _content_text(content) -> str:
    if content is None:
        return ""
    return content if isinstance(content, str) else str(content)


def normalize_history(history: list, incoming_message: str) -> list:
    """Drop malformed entries and a trailing copy of the incoming message.

    Callers that read the history straight from the message table already
    include the message being answered as the last incoming entry. Content
    that isn't text (numbers from a JSON column, say) is stringified.
    """
    cleaned = [
        {"direction": m.get("direction"), "content": _content_text(m.get("content"))}
        for m in (history or [])
        if isinstance(m, dict) and m.get("direction") in ("incoming", "outgoing")
    ]
    if (cleaned and cleaned[-1]["direction"] == "incoming"
            and cleaned[-1]["content"].strip() == (incoming_message or "").strip()):
        cleaned.pop()
    return cleaned


def build_system_prompt(settings: AgentSettings, current_stage: Stage, history: list,
                        incoming_message: str, is_bot_message: bool = False) -> str:
    playbook = settings.playbook or DEFAULT_PLAYBOOK

    persona_lines = []
    if settings.persona_name:
        persona_lines.append(f"Seu nome é {settings.persona_name}.")
    if settings.offer_description:
        persona_lines.append(f"Oferta: {settings.offer_description}")
    if settings.tone:
        persona_lines.append(f"Tom de voz: {settings.tone}")
    persona_block = "\n".join(persona_lines)

    bot_note = ""
    if is_bot_message:
        bot_note = (
            "\nATENÇÃO: a última mensagem parece ser uma resposta automática de bot. "
            "Responda de forma breve e educada, sem avançar o funil.\n"
        )

    return f"""
{playbook}
{persona_block}

ETAPAS DO FUNIL:
{_stage_guide()}

Etapa atual do lead: {current_stage.key.value} ({current_stage.name})
Avance no máximo uma etapa por mensagem. Se o lead estiver qualificado ou pedir
para falar com uma pessoa, use should_handoff = true.

RECURSOS:
{_resources_block(settings)}
{bot_note}
RESPONDA EM JSON COM ESTE FORMATO EXATO:
{{
  "response": "sua resposta (máx {MAX_RESPONSE_CHARS} caracteres)",
  "stage": "STAGE_1" | "STAGE_2" | "STAGE_3" | "STAGE_4" | "STAGE_5",
  "lead_name": "nome do lead ou null",
  "bant_score": {{"budget": true/false/null, "authority": true/false/null, "need": true/false/null, "timing": true/false/null}},
  "should_handoff": true/false,
  "handoff_reason": "motivo ou null",
  "conversation_summary": "resumo da conversa (obrigatório se should_handoff = true)",
  "should_send_video": true/false,
  "should_send_site": true/false
}}

Histórico da conversa:
{_history_transcript(history)}

Última mensagem do lead: "{incoming_message}"
"""


def build_messages(system_prompt: str, history: list, incoming_message: str) -> list:
    messages = [{"role": "system", "content": system_prompt}]
    for m in history:
        messages.append({
            "role": "user" if m["direction"] == "incoming" else "assistant",
            "content": m["content"],
        })
    messages.append({"role": "user", "content": incoming_message})
    return messages


# ─── PARSING ──────────────────────────────────────────────────

def _coerce_bool(value) -> Optional[bool]:
    """Normalize model booleans; returns None when the value is not a recognisable boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE_STRINGS:
            return True
        if s in _FALSE_STRINGS:
            return False
    return None


def _clean_text(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    s = value.strip()
    return None if s.lower() in _NULL_STRINGS else s


def _parse_bant(value) -> Optional[dict]:
    if not isinstance(value, dict):
        return None
    return {k: _coerce_bool(value.get(k)) for k in BANT_KEYS}


def parse_classification(content: str) -> ClassifierResult:
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        return InvalidClassification("malformed", f"not JSON: {e}")

    if not isinstance(data, dict):
        return InvalidClassification("malformed", f"expected object, got {type(data).__name__}")

    response = _clean_text(data.get("response"))
    if not response:
        return InvalidClassification("malformed", "missing 'response'")

    stage = data.get("stage")
    if not isinstance(stage, str) or not stage.strip():
        return InvalidClassification("malformed", "missing 'stage'")

    return Classification(
        response=response,
        proposed_stage=stage.strip(),
        lead_name=_clean_text(data.get("lead_name")),
        bant_score=_parse_bant(data.get("bant_score")),
        should_handoff=_coerce_bool(data.get("should_handoff")) is True,
        should_send_video=_coerce_bool(data.get("should_send_video")) is True,
        should_send_site=_coerce_bool(data.get("should_send_site")) is True,
        handoff_reason=_clean_text(data.get("handoff_reason")),
        conversation_summary=_clean_text(data.get("conversation_summary")),
        raw=data,
    )


# ─── CLASSIFIER ───────────────────────────────────────────────

class FunnelClassifier:
    """Wraps the gateway call and the parse into one never-raising step."""

    def __init__(self, gateway=None):
        self.gateway = gateway or get_gateway()

    def classify(self, history: list, incoming_message: str, current_stage: Stage,
                 settings: AgentSettings, is_bot_message: bool = False,
                 conversation_id: str = None) -> ClassifierResult:
        history = normalize_history(history, incoming_message)
        system_prompt = build_system_prompt(
            settings, current_stage, history, incoming_message, is_bot_message
        )
        messages = build_messages(system_prompt, history, incoming_message)
        log_extra = {"conversation_id": conversation_id or "", "phase": "classify"}

        try:
            result = self.gateway.complete(messages, stage_name="classify")
        except LLMTimeoutError as e:
            logger.warning("Classifier timed out: %s", e, extra=log_extra)
            return InvalidClassification("timeout", str(e))
        except LLMError as e:
            logger.warning("Classifier transport error: %s", e, extra=log_extra)
            return InvalidClassification("transport", str(e))
        except Exception as e:
            logger.exception("Classifier failed unexpectedly", extra=log_extra)
            return InvalidClassification("transport", f"{type(e).__name__}: {e}")

        content = result.get("content", "")
        logger.debug("Classifier raw output: %s", content, extra=log_extra)
        parsed = parse_classification(content)
        if not parsed.is_valid:
            logger.warning("Classifier output rejected: %s", parsed.detail, extra=log_extra)
        return parsed

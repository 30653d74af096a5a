"""
SDR Agent - Stage Registry
Fixed mapping between the WhatsApp label ids applied to a conversation and
their position in the sales funnel.

Stages 1-4 are driven by the agent. Stage 5 (Handoff) is where a human takes
over; everything at or beyond it is out of the agent's hands.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StageName(str, Enum):
    STAGE_1 = "STAGE_1"   # Lead Novo
    STAGE_2 = "STAGE_2"   # Apresentação Feita
    STAGE_3 = "STAGE_3"   # Interesse Confirmado
    STAGE_4 = "STAGE_4"   # Negociando
    STAGE_5 = "STAGE_5"   # Handoff
    STAGE_6 = "STAGE_6"   # Convertido
    STAGE_7 = "STAGE_7"   # Perdido


@dataclass(frozen=True)
class Stage:
    key: StageName
    id: str
    order: int
    name: str
    funnel_stage: str
    objective: str = ""

    @property
    def is_ai_controlled(self) -> bool:
        return self.order < HANDOFF_ORDER

    def to_dict(self) -> dict:
        return {
            "key": self.key.value,
            "label_id": self.id,
            "order": self.order,
            "name": self.name,
            "funnel_stage": self.funnel_stage,
            "is_ai_controlled": self.is_ai_controlled,
        }


HANDOFF_ORDER = 5

STAGES = (
    Stage(StageName.STAGE_1, "16", 1, "Lead Novo", "new",
          "Lead frio: cumprimentar, descobrir o nome e entender o contexto."),
    Stage(StageName.STAGE_2, "13", 2, "Apresentação Feita", "presentation",
          "Apresentar a oferta e levantar a necessidade do lead."),
    Stage(StageName.STAGE_3, "14", 3, "Interesse Confirmado", "interest",
          "Lead demonstrou interesse real: aprofundar BANT (orçamento, decisão, prazo)."),
    Stage(StageName.STAGE_4, "20", 4, "Negociando", "negotiating",
          "Lead pediu preço, forma de pagamento ou como fechar."),
    Stage(StageName.STAGE_5, "21", 5, "Handoff", "handoff",
          "Lead qualificado: passar para um consultor humano."),
    Stage(StageName.STAGE_6, "22", 6, "Convertido", "converted"),
    Stage(StageName.STAGE_7, "23", 7, "Perdido", "lost"),
)

_BY_ID = {s.id: s for s in STAGES}
_BY_ORDER = {s.order: s for s in STAGES}
_BY_KEY = {s.key.value: s for s in STAGES}
_BY_SLUG = {s.funnel_stage: s for s in STAGES}


def stage_order(stage_id: Optional[str]) -> Optional[int]:
    """Order of a known label id, or None."""
    stage = _BY_ID.get(stage_id) if stage_id is not None else None
    return stage.order if stage else None


def stage_by_order(order: Optional[int]) -> Optional[Stage]:
    return _BY_ORDER.get(order) if order is not None else None


def is_handoff_or_beyond(order: int) -> bool:
    return order >= HANDOFF_ORDER


def resolve_stage(value) -> Optional[Stage]:
    """Resolve a StageName, label id or funnel slug to a Stage.

    The oracle tends to echo whichever form it saw in the prompt, so all three
    are accepted. Anything else returns None.
    """
    if isinstance(value, StageName):
        return _BY_KEY[value.value]
    if not isinstance(value, str):
        return None
    key = value.strip()
    return (_BY_KEY.get(key.upper()) or _BY_ID.get(key)
            or _BY_SLUG.get(key.lower()))


def first_stage() -> Stage:
    return STAGES[0]


def handoff_stage() -> Stage:
    return _BY_ORDER[HANDOFF_ORDER]


def current_stage_or_first(stage_id: Optional[str]) -> Stage:
    """Resolve the conversation's current stage, treating unknown/missing as the first stage."""
    return _BY_ID.get(stage_id or "", first_stage())


def list_stages() -> list:
    return [s.to_dict() for s in STAGES]

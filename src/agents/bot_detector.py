"""
Detects automated replies (WhatsApp Business greetings, out-of-hours notices)
so the agent answers them briefly instead of pitching to a bot.

When the lead's side keeps answering with auto-replies the two bots would
talk to each other forever; is_bot_loop() spots that so the engine can pause
the AI instead of replying again.
"""

import re

BOT_MESSAGE_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"^aguarde.*atendimento",
        r"^obrigad[oa].*aguarde",
        r"^mensagem autom[aá]tica",
        r"^atendimento.*hor[aá]rio",
        r"^fora do hor[aá]rio",
        r"^estamos fechados",
        r"^nosso hor[aá]rio",
        r"^em breve.*atenderemos",
        r"^sua mensagem foi recebida",
        r"^recebemos sua mensagem",
        r"^ol[aá]!.*bem-vind[oa]",
        r"^seja bem-vind[oa]",
        r"^este [eé] um atendimento autom[aá]tico",
        r"^mensagem enviada fora do expediente",
    )
]

# Consecutive auto-replies from the lead, counting the current one
BOT_LOOP_THRESHOLD = 3


def is_bot_message(text) -> bool:
    if not isinstance(text, str) or not text:
        return False
    stripped = text.strip()
    return any(p.search(stripped) for p in BOT_MESSAGE_PATTERNS)


def is_bot_loop(incoming_message: str, history: list, threshold: int = BOT_LOOP_THRESHOLD) -> bool:
    """True when the incoming message and the lead's previous messages are all auto-replies.

    history is oldest-first and must not contain the incoming message itself
    (see classifier.normalize_history). Our own outgoing messages are skipped.
    """
    if not is_bot_message(incoming_message):
        return False
    streak = 1
    for message in reversed(history or []):
        if not isinstance(message, dict) or message.get("direction") != "incoming":
            continue
        if not is_bot_message(message.get("content")):
            return False
        streak += 1
        if streak >= threshold:
            return True
    return streak >= threshold

"""
Test doubles shared across the suite.
"""

import json


class FakeGateway:
    """Stands in for LLMGateway. Replays canned replies and counts calls.

    Each reply is either a dict (sent as JSON), a raw string, or an exception
    instance to raise. The last reply repeats once the others are used up.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, messages, stage_name="unknown", **kwargs):
        self.calls.append(messages)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        content = json.dumps(reply) if isinstance(reply, dict) else reply
        return {"content": content, "model": "fake", "request_id": "test",
                "stage": stage_name, "duration_ms": 1}

    @property
    def call_count(self):
        return len(self.calls)


def oracle_reply(stage="STAGE_1", response="Oi! Tudo bem?", **fields):
    reply = {"response": response, "stage": stage}
    reply.update(fields)
    return reply

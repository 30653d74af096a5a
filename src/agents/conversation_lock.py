"""
Per-conversation mutual exclusion.

Turns for the same conversation must run one at a time: both the regression
guard and the single-step guard read the current stage, and two turns reading
the same stale stage could each advance one step. Locks are reference counted
so the registry only holds entries for conversations with a turn in flight.
Cross-process safety comes from the compare-and-set stage write in the
data-access layer.
"""

import threading
from contextlib import contextmanager

# conversation_id -> [lock, holders]
_locks = {}
_registry_lock = threading.Lock()


@contextmanager
def conversation_lock(conversation_id: str, timeout: float = None):
    """Hold the lock for one conversation.

    Raises TimeoutError if timeout is given and the lock isn't acquired in time.
    """
    with _registry_lock:
        entry = _locks.setdefault(conversation_id, [threading.Lock(), 0])
        entry[1] += 1
    lock = entry[0]

    acquired = lock.acquire(timeout=timeout) if timeout is not None else lock.acquire()
    try:
        if not acquired:
            raise TimeoutError(f"Conversation {conversation_id} is busy")
        yield
    finally:
        if acquired:
            lock.release()
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0 and _locks.get(conversation_id) is entry:
                del _locks[conversation_id]


def active_conversations() -> int:
    with _registry_lock:
        return len(_locks)

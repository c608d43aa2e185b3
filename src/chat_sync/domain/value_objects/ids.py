from __future__ import annotations

import uuid
from typing import NewType

ConversationId = NewType("ConversationId", str)
UserId = NewType("UserId", str)
Sequence = NewType("Sequence", int)

DIRECT_SEPARATOR = "_"
GROUP_PREFIX = "group_"


def direct_conversation_id(user_a: str, user_b: str) -> ConversationId:
    """Canonical id of the 1:1 conversation between two users.

    Participant ids are sorted before joining, so both sides derive the same id.
    """
    if not user_a or not user_b:
        raise ValueError("Participant ids must be non-empty")
    if user_a == user_b:
        raise ValueError("A direct conversation needs two distinct participants")
    # The separator must stay unambiguous: ("a_b", "c") and ("a", "b_c") would collide.
    if DIRECT_SEPARATOR in user_a or DIRECT_SEPARATOR in user_b:
        raise ValueError(f"Participant ids must not contain {DIRECT_SEPARATOR!r}")
    first, second = sorted((user_a, user_b))
    return ConversationId(f"{first}{DIRECT_SEPARATOR}{second}")


def new_group_conversation_id() -> ConversationId:
    return ConversationId(f"{GROUP_PREFIX}{uuid.uuid4().hex}")

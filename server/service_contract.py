"""Service layer contract shared by every command handler.

Handlers return a 4-tuple:
    (handled: bool, error: str | None, emits: List[dict], broadcasts: List[Tuple[str, dict]])

    - handled: True when the handler recognised the request
    - error: a user-facing message when validation failed (still handled=True)
    - emits: ordered payloads for the acting player
    - broadcasts: (room_id, payload) pairs for the other occupants of a room

Payloads are always {'type': <category>, 'content': <text>} where category is
one of system/game/error/combat/npc/chat/action (see constants.MESSAGE_TYPES).

    return success([line('game', 'You take the torch.')])
    return error("You can't go that way.")
    return success(emits, [(room_id, line('action', 'Ann leaves north.'))])
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from constants import get_message_payload, MSG_TYPE_ERROR

ServiceReturn = Tuple[bool, Optional[str], List[dict], List[Tuple[str, dict]]]


def line(category: str, content: str) -> dict:
    """Build one presentation payload."""
    return get_message_payload(category, content)


def success(emits: List[dict], broadcasts: List[Tuple[str, dict]] | None = None) -> ServiceReturn:
    return True, None, emits, broadcasts or []


def error(message: str) -> ServiceReturn:
    """Validation failure: handled, nothing changed, one error line for the player."""
    return True, message, [], []


def emit_service_result(
    ctx,  # CommandContext; untyped to avoid a circular import
    emit_fn,
    service_result: ServiceReturn,
) -> None:
    """Render a service result.

    An error takes precedence: it is emitted alone and no broadcasts go out.
    Otherwise every emit goes to the acting session in order, then each
    broadcast goes to its room excluding the actor.
    """
    _handled, error_msg, emits, broadcasts = service_result
    if error_msg:
        emit_fn(ctx.message_out, {'type': MSG_TYPE_ERROR, 'content': error_msg})
        return
    for payload in emits:
        emit_fn(ctx.message_out, payload)
    for room_id, payload in broadcasts:
        ctx.broadcast_to_room(room_id, payload, exclude_sid=ctx.sid)

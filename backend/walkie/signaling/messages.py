"""시그널링 메시지 정의.

WebSocket 프레임은 모두 ``{"type": <event>, "data": <object>}`` 형태의 JSON입니다.
이 모듈은 이벤트 이름 상수와 envelope 생성/해석 헬퍼를 제공합니다.

Events:
    클라이언트 → 서버:
        join-room, leave-room, offer, answer, ice-candidate, user-talking
    서버 → 클라이언트:
        user-connected, user-disconnected, room-users, error
        (offer/answer/ice-candidate/user-talking은 ``from``이 붙어 중계됨)
"""
from typing import Any, Dict, Optional, Tuple

JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"
USER_TALKING = "user-talking"

USER_CONNECTED = "user-connected"
USER_DISCONNECTED = "user-disconnected"
ROOM_USERS = "room-users"
ERROR = "error"

# 서버가 내용 검사 없이 중계하는 이벤트
RELAY_EVENTS = frozenset({OFFER, ANSWER, ICE_CANDIDATE, USER_TALKING})


def envelope(event: str, data: Optional[Dict[str, Any]] = None) -> dict:
    """이벤트 이름과 payload로 전송용 메시지를 만듭니다."""
    return {"type": event, "data": data if data is not None else {}}


def parse_envelope(message: Any) -> Tuple[Optional[str], dict]:
    """수신 메시지에서 (이벤트, payload)를 꺼냅니다.

    Args:
        message: ``receive_json()``으로 받은 객체

    Returns:
        Tuple[Optional[str], dict]: 이벤트 이름과 payload.
            객체가 아니거나 type이 없으면 이벤트는 None
    """
    if not isinstance(message, dict):
        return None, {}
    event = message.get("type")
    data = message.get("data")
    if not isinstance(event, str):
        return None, {}
    return event, data if isinstance(data, dict) else {}

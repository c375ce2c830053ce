"""시그널링 WebSocket 라우터.

룸 참가/퇴장 및 WebRTC offer/answer/ICE candidate 중계를 위한
WebSocket 엔드포인트와 룸 목록 조회 API를 제공합니다.
"""

import logging
from typing import Dict, Optional, TYPE_CHECKING

from fastapi import APIRouter, WebSocket

from walkie.signaling import RelaySession

if TYPE_CHECKING:
    from walkie.signaling import RoomRegistry, SignalingBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter()

# 글로벌 매니저 참조 (app.py에서 설정됨)
_registry: Optional["RoomRegistry"] = None
_broadcaster: Optional["SignalingBroadcaster"] = None
_active_sessions: Dict[str, RelaySession] = {}


def init_managers(registry: "RoomRegistry", broadcaster: "SignalingBroadcaster"):
    """레지스트리와 브로드캐스터 인스턴스를 설정합니다.

    app.py에서 호출하여 라우터가 사용할 참조를 설정합니다.
    """
    global _registry, _broadcaster
    _registry = registry
    _broadcaster = broadcaster
    logger.info("시그널링 라우터 매니저 초기화 완료")


async def close_all_sessions() -> None:
    """서버 종료 시 모든 세션을 정리합니다."""
    sessions = list(_active_sessions.values())
    for session in sessions:
        await session.on_disconnect()
        try:
            await session.websocket.close(code=1001)
        except Exception as e:
            logger.debug(f"세션 {session.session_id[:8]} 소켓 종료 중 오류: {e}")
    _active_sessions.clear()
    if sessions:
        logger.info(f"활성 세션 {len(sessions)}개 정리 완료")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """시그널링 WebSocket 엔드포인트.

    연결마다 RelaySession을 만들고 연결이 끊길 때까지 메시지를 처리합니다.
    세션 정리(룸 퇴장 및 user-disconnected 알림)는 연결 종료 시 한 번 수행됩니다.
    """
    if _registry is None or _broadcaster is None:
        logger.error("매니저가 초기화되지 않음")
        await websocket.close(code=1011, reason="Server not ready")
        return

    await websocket.accept()

    session = RelaySession(websocket, _registry, _broadcaster)
    _active_sessions[session.session_id] = session
    logger.info(f"세션 {session.session_id[:8]} 연결됨")

    try:
        await session.run()
    finally:
        _active_sessions.pop(session.session_id, None)


@router.get("/api/rooms")
async def get_rooms():
    """활성화된 모든 룸과 멤버 목록을 조회합니다.

    Returns:
        dict: ``{"rooms": [{"room", "members", "count"}]}``
    """
    if _registry is None:
        return {"rooms": []}
    return {"rooms": _registry.get_room_list()}

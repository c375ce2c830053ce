"""시그널링 서버 모듈.

룸 멤버십 관리와 WebRTC 협상 메시지 중계를 담당합니다.

Classes:
    RoomRegistry: 룸 → 참가자 집합 관리
    SignalingBroadcaster: 룸/참가자 단위 메시지 전달
    RelaySession: 연결별 세션 핸들러

Config:
    server_config: 포트, CORS, 로그 설정
"""

from .room_registry import RoomRegistry
from .broadcaster import SignalingBroadcaster
from .session import RelaySession
from .config import server_config, ServerConfig

__all__ = [
    "RoomRegistry",
    "SignalingBroadcaster",
    "RelaySession",
    "server_config",
    "ServerConfig",
]

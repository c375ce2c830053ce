"""시그널링 브로드캐스트 모듈.

세션 핸들러가 룸 단위로 메시지를 전달할 때 사용하는 기능을 제공합니다.
룸 전체(보낸 세션 제외) 또는 특정 참가자 한 명에게 전달할 수 있습니다.

Delivery:
    - 수신자 간 전달 순서는 보장하지 않음
    - 한 수신자에 대해서는 보낸 순서가 유지됨 (세션별 전송 락)
    - best-effort at-most-once, 재시도 없음
"""
import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .session import RelaySession

logger = logging.getLogger(__name__)


class SignalingBroadcaster:
    """룸에 바인딩된 세션들에게 메시지를 전달하는 클래스.

    Attributes:
        sessions (Dict[str, Dict[str, RelaySession]]): 룸 이름 → {세션 ID: 세션}
    """

    def __init__(self):
        self.sessions: Dict[str, Dict[str, "RelaySession"]] = {}
        self._lock = threading.Lock()

    def attach(self, room: str, session: "RelaySession") -> None:
        """세션을 룸의 수신 대상으로 등록합니다."""
        with self._lock:
            self.sessions.setdefault(room, {})[session.session_id] = session

    def detach(self, room: str, session: "RelaySession") -> None:
        """세션을 룸의 수신 대상에서 제거합니다. 등록되지 않았으면 무시."""
        with self._lock:
            bound = self.sessions.get(room)
            if bound is None:
                return
            bound.pop(session.session_id, None)
            if not bound:
                del self.sessions[room]

    def sessions_in(self, room: str) -> List["RelaySession"]:
        with self._lock:
            return list(self.sessions.get(room, {}).values())

    async def send_to_room(
        self,
        room: str,
        exclude_session: Optional["RelaySession"],
        message: dict
    ) -> int:
        """룸에 있는 모든 세션(exclude_session 제외)에 메시지를 전송합니다.

        Args:
            room: 대상 룸
            exclude_session: 받지 않을 세션 (보통 보낸 세션)
            message: 전송할 envelope

        Returns:
            int: 전송에 성공한 수신자 수
        """
        recipients = [
            s for s in self.sessions_in(room)
            if exclude_session is None or s.session_id != exclude_session.session_id
        ]
        return await self._deliver(recipients, message)

    async def send_to_participant(self, room: str, target: str, message: dict) -> int:
        """룸 안에서 target 참가자 ID에 바인딩된 세션에만 메시지를 전송합니다.

        Returns:
            int: 전송에 성공한 수신자 수 (정상적인 경우 0 또는 1)
        """
        recipients = [s for s in self.sessions_in(room) if s.participant_id == target]
        if not recipients:
            logger.warning(f"[Broadcast] 룸 '{room}'에 대상 {target} 없음, {message.get('type')} 버림")
        return await self._deliver(recipients, message)

    async def _deliver(self, recipients: List["RelaySession"], message: dict) -> int:
        delivered = 0
        for session in recipients:
            # 실패한 수신자의 정리는 해당 세션의 수신 루프가 담당
            if await session.send(message):
                delivered += 1
        return delivered

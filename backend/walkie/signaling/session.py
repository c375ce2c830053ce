"""릴레이 세션 핸들러 모듈.

WebSocket 연결 하나당 하나의 RelaySession이 생성되어 그 연결의
룸 바인딩과 참가자 신원을 소유합니다.

처리하는 메시지 타입:
    - join-room: 룸 입장, 다른 멤버에게 user-connected, 본인에게 room-users 전송
    - leave-room: 룸 퇴장, 남은 멤버에게 user-disconnected 전송
    - offer / answer / ice-candidate: ``to``가 있으면 해당 참가자에게만, 없으면 룸 전체에 중계
    - user-talking: 룸 전체(본인 제외)에 중계

Lifecycle:
    1. 연결 수락 → 세션 생성 (transport ID = uuid4)
    2. join-room → current_room / participant_id 기록
    3. leave-room 또는 연결 종료 → 룸 정리 (정리는 정확히 한 번)

Note:
    - 중계 메시지의 payload는 검사하지 않음 (``from``만 세션의 참가자 ID로 덮어씀)
    - 잘못된 메시지는 조용히 버림. ACK/재시도 없음
    - 퇴장/종료 시 참가자 ID는 join 때 기록한 값을 그대로 사용.
      join에 참가자 ID가 없었던 경우에만 transport ID를 사용
"""
import asyncio
import json
import logging
import uuid
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect

from . import messages
from .broadcaster import SignalingBroadcaster
from .room_registry import RoomRegistry

logger = logging.getLogger(__name__)


class RelaySession:
    """WebSocket 연결 하나와 그 연결의 룸/참가자 바인딩을 관리하는 클래스.

    Attributes:
        session_id (str): 연결 단위 transport 식별자
        current_room (Optional[str]): 현재 입장한 룸
        participant_id (Optional[str]): 애플리케이션 레벨 참가자 ID
        closed (bool): 종료 정리가 이미 수행되었는지 여부
    """

    def __init__(
        self,
        websocket: WebSocket,
        registry: RoomRegistry,
        broadcaster: SignalingBroadcaster,
        session_id: Optional[str] = None
    ):
        self.websocket = websocket
        self.registry = registry
        self.broadcaster = broadcaster
        self.session_id = session_id or str(uuid.uuid4())
        self.current_room: Optional[str] = None
        self.participant_id: Optional[str] = None
        self.closed = False
        self._send_lock = asyncio.Lock()

    async def send(self, message: dict) -> bool:
        """이 세션의 클라이언트에게 메시지를 전송합니다.

        Returns:
            bool: 전송 성공 여부. 실패는 로그만 남기고 예외를 올리지 않음
        """
        if self.closed:
            return False
        async with self._send_lock:
            try:
                await self.websocket.send_json(message)
                return True
            except Exception as e:
                logger.error(f"[Signaling] 세션 {self.session_id[:8]} 전송 실패: {e}")
                return False

    async def run(self) -> None:
        """연결이 끊길 때까지 메시지를 수신하고 처리합니다.

        어떤 경로로 끝나든 on_disconnect()가 호출됩니다.
        """
        try:
            while True:
                raw = await self.websocket.receive_text()
                try:
                    data = json.loads(raw)
                except ValueError:
                    logger.warning(f"[Signaling] 세션 {self.session_id[:8]} JSON 파싱 실패")
                    await self.send(messages.envelope(messages.ERROR, {"message": "Invalid JSON"}))
                    continue
                await self.dispatch(data)
        except WebSocketDisconnect:
            logger.info(f"[Signaling] 세션 {self.session_id[:8]} 연결 끊김")
        except Exception as e:
            logger.error(f"[Signaling] 세션 {self.session_id[:8]} 처리 중 오류: {e}", exc_info=True)
        finally:
            await self.on_disconnect()

    async def dispatch(self, message) -> None:
        """수신한 envelope을 이벤트별 핸들러로 전달합니다."""
        event, data = messages.parse_envelope(message)
        if event is None:
            await self.send(messages.envelope(messages.ERROR, {"message": "Malformed message"}))
            return

        if event == messages.JOIN_ROOM:
            await self.on_join(data.get("room"), data.get("userId"))
        elif event == messages.LEAVE_ROOM:
            await self.on_leave(data.get("room"), data.get("userId"))
        elif event in messages.RELAY_EVENTS:
            await self.on_relay_message(event, data)
        else:
            logger.warning(f"[Signaling] 알 수 없는 메시지 타입: {event}")

    async def on_join(self, room: Optional[str], participant: Optional[str]) -> None:
        """룸 입장 처리.

        순서:
            1. 다른 룸에 있으면 먼저 퇴장, 같은 참가자 ID의 기존 세션은 교체
            2. current_room / participant_id 기록, 레지스트리에 추가
            3. 다른 멤버에게 user-connected 브로드캐스트
            4. 입장 후 멤버 스냅샷(본인 포함)을 본인에게 room-users로 전송
        """
        if not room or not isinstance(room, str):
            logger.warning(f"[Signaling] 세션 {self.session_id[:8]} 룸 없는 join-room 무시")
            return
        participant = participant if isinstance(participant, str) and participant else self.session_id

        if self.current_room is not None and (
            self.current_room != room or self.participant_id != participant
        ):
            await self._leave_current()

        for other in self.broadcaster.sessions_in(room):
            if other is not self and other.participant_id == participant:
                other.evict()

        self.current_room = room
        self.participant_id = participant
        snapshot = self.registry.join(room, participant)
        self.broadcaster.attach(room, self)

        await self.broadcaster.send_to_room(
            room, self, messages.envelope(messages.USER_CONNECTED, {"userId": participant})
        )
        await self.send(messages.envelope(messages.ROOM_USERS, {"users": sorted(snapshot)}))
        logger.info(f"[Signaling] 참가자 {participant} 룸 '{room}' 입장 (세션 {self.session_id[:8]})")

    async def on_leave(self, room: Optional[str], participant: Optional[str]) -> None:
        """룸 퇴장 처리. 현재 룸이 아니면 무시합니다."""
        if self.current_room is None or room != self.current_room:
            logger.warning(f"[Signaling] 세션 {self.session_id[:8]} 현재 룸이 아닌 '{room}' leave 무시")
            return
        if participant and participant != self.participant_id:
            logger.warning(
                f"[Signaling] leave-room 참가자 불일치: {participant} != {self.participant_id}, 세션 값 사용"
            )
        await self._leave_current()

    async def on_disconnect(self) -> None:
        """연결 종료 정리. 여러 번 호출되어도 한 번만 수행됩니다."""
        if self.closed:
            return
        if self.current_room is not None:
            await self._leave_current()
        self.closed = True
        logger.info(f"[Signaling] 세션 {self.session_id[:8]} 정리 완료")

    async def on_relay_message(self, event: str, data: dict) -> None:
        """offer/answer/ice-candidate/user-talking 중계.

        ``to``가 있으면 유니캐스트, 없거나 user-talking이면 룸 전체(본인 제외)로 전송합니다.
        """
        if self.current_room is None:
            logger.warning(f"[Signaling] 룸 밖 세션 {self.session_id[:8]}의 {event} 버림")
            return
        room = data.get("room", self.current_room)
        if room != self.current_room:
            logger.warning(f"[Signaling] 세션 룸 '{self.current_room}'과 다른 룸 '{room}'의 {event} 버림")
            return

        payload = dict(data)
        payload["from"] = self.participant_id
        message = messages.envelope(event, payload)
        target = payload.get("to")

        if event != messages.USER_TALKING and target:
            count = await self.broadcaster.send_to_participant(room, target, message)
        else:
            count = await self.broadcaster.send_to_room(room, self, message)
        logger.debug(f"[Signaling] {event} 중계: {self.participant_id} → {target or room} ({count}명)")

    def evict(self) -> None:
        """같은 참가자 ID로 새 세션이 입장했을 때 이 세션의 룸 바인딩을 조용히 해제합니다.

        레지스트리 멤버십과 퇴장 브로드캐스트는 새 세션이 이어받으므로 건드리지 않습니다.
        이후 이 세션의 연결 종료는 룸에 영향을 주지 않습니다.
        """
        room, self.current_room = self.current_room, None
        if room is not None:
            self.broadcaster.detach(room, self)
            logger.info(f"[Signaling] 참가자 {self.participant_id} 새 세션으로 교체, 세션 {self.session_id[:8]} 룸 '{room}' 해제")

    async def _leave_current(self) -> None:
        room, participant = self.current_room, self.participant_id
        # 바인딩을 먼저 끊어야 이후 이 세션 이름으로 브로드캐스트되지 않음
        self.current_room = None
        self.broadcaster.detach(room, self)
        self.registry.leave(room, participant)
        await self.broadcaster.send_to_room(
            room, None, messages.envelope(messages.USER_DISCONNECTED, {"userId": participant})
        )
        logger.info(f"[Signaling] 참가자 {participant} 룸 '{room}' 퇴장 (세션 {self.session_id[:8]})")

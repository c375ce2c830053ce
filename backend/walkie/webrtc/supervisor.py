"""로컬 참가자의 피어 연결 관리 모듈.

시그널링 서버에서 오는 룸 이벤트에 반응하여 원격 참가자별 PeerLink를
생성/종료하고, 로컬의 입장/퇴장/말하기 의도를 시그널링 메시지로 보냅니다.

Event Handling:
    - room-users: 본인 외 모든 참가자에 대해 링크 생성 + offer 시작
    - user-connected: 링크만 생성 (상대의 offer를 기다림)
    - user-disconnected: 링크 종료 및 제거
    - offer / answer / ice-candidate: 해당 링크로 전달
    - user-talking: 원격 말하기 상태 갱신

Resource Scope:
    마이크 캡처는 join()에서 획득하고 leave(), 연결 끊김, 입장 실패의
    모든 경로에서 해제됩니다.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from aiortc.contrib.media import MediaBlackhole, MediaRecorder

from ..signaling import messages
from .capture import CaptureUnavailableError, MicrophoneCapture
from .config import audio_config
from .peer_link import PeerLink, default_connection_factory

logger = logging.getLogger(__name__)


def default_sink_factory():
    """원격 오디오 출력. 출력 장치가 설정되지 않으면 MediaBlackhole."""
    if audio_config.OUTPUT_DEVICE:
        return MediaRecorder(audio_config.OUTPUT_DEVICE, format=audio_config.OUTPUT_FORMAT)
    return MediaBlackhole()


class ConnectionSupervisor:
    """로컬 참가자의 활성 PeerLink 집합을 소유하는 클래스.

    Attributes:
        local_id (str): 로컬 참가자 ID
        username (str): 표시 이름
        room (Optional[str]): 현재 룸 (입장 전/퇴장 후에는 None)
        links (Dict[str, PeerLink]): 원격 참가자 ID → PeerLink
        remote_talking (Dict[str, bool]): 원격 참가자 ID → 말하는 중 여부
    """

    def __init__(
        self,
        local_id: str,
        signaling,
        capture: Optional[MicrophoneCapture] = None,
        connection_factory: Callable = default_connection_factory,
        sink_factory: Callable = default_sink_factory,
        on_error: Optional[Callable[[str], None]] = None,
        on_talking: Optional[Callable[[str, bool], None]] = None
    ):
        self.local_id = local_id
        self.username = ""
        self.room: Optional[str] = None
        self.links: Dict[str, PeerLink] = {}
        self.remote_talking: Dict[str, bool] = {}

        self.signaling = signaling
        self.capture = capture or MicrophoneCapture()
        self._connection_factory = connection_factory
        self._sink_factory = sink_factory
        self._on_error = on_error
        self._on_talking = on_talking
        # 링크가 생기기 전에 도착한 ICE candidate
        self._early_candidates: Dict[str, List[dict]] = {}

    # ------------------------------------------------------------
    # 로컬 의도
    # ------------------------------------------------------------

    async def join(self, room: str, username: Optional[str] = None) -> bool:
        """마이크를 획득한 뒤 룸 입장 요청을 보냅니다.

        마이크 획득에 실패하면 입장을 중단하고 join-room을 보내지 않습니다.

        Returns:
            bool: 입장 요청 전송 여부
        """
        room = (room or "").strip()
        if not room:
            self._notify_error("Please enter a room name")
            return False
        if self.room is not None:
            await self.leave()

        try:
            await self.capture.acquire()
        except CaptureUnavailableError as e:
            self.capture.release()
            self._notify_error(f"Failed to join room: {e}")
            return False

        self.room = room
        self.username = (username or "").strip() or "Anonymous"
        if not await self.signaling.send(messages.JOIN_ROOM, {"room": room, "userId": self.local_id}):
            self.room = None
            self.capture.release()
            self._notify_error("Failed to join room: not connected to server")
            return False

        logger.info(f"[Supervisor] {self.username} ({self.local_id}) 룸 '{room}' 입장 요청")
        return True

    async def leave(self) -> None:
        """퇴장 요청을 보내고 모든 링크를 닫은 뒤 마이크를 해제합니다."""
        if self.room is not None:
            room, self.room = self.room, None
            await self.signaling.send(messages.LEAVE_ROOM, {"room": room, "userId": self.local_id})
            logger.info(f"[Supervisor] 룸 '{room}' 퇴장")
        await self._teardown()

    async def set_talking(self, is_talking: bool) -> bool:
        """로컬 오디오 게이트를 열거나 닫고, 룸에 있으면 말하기 상태를 알립니다.

        협상과 무관한 로컬 음소거 동작입니다. 룸이 없으면 메시지를 보내지 않습니다.

        Returns:
            bool: 캡처가 활성화되어 게이트가 적용되었는지 여부
        """
        if not self.capture.enable_output(is_talking):
            return False
        if self.room is not None:
            await self.signaling.send(messages.USER_TALKING, {
                "room": self.room,
                "userId": self.local_id,
                "isTalking": is_talking,
            })
        return True

    async def on_transport_lost(self) -> None:
        """시그널링 연결이 끊겼을 때 호출됩니다. 자동 재입장은 하지 않습니다."""
        self._notify_error("Lost connection to server")
        self.room = None
        await self._teardown()

    # ------------------------------------------------------------
    # 시그널링 이벤트
    # ------------------------------------------------------------

    async def handle_message(self, event: Optional[str], data: dict) -> None:
        """시그널링 서버에서 받은 이벤트를 처리합니다."""
        if event == messages.ERROR:
            logger.warning(f"[Supervisor] 서버 오류: {data.get('message')}")
            return
        if self.room is None:
            logger.debug(f"[Supervisor] 룸 밖에서 받은 {event} 무시")
            return

        sender = data.get("from")
        if event == messages.ROOM_USERS:
            await self.on_room_users(data.get("users") or [])
        elif event == messages.USER_CONNECTED:
            await self.on_user_connected(data.get("userId"))
        elif event == messages.USER_DISCONNECTED:
            await self.on_user_disconnected(data.get("userId"))
        elif event == messages.OFFER:
            await self.on_offer(sender, data.get("offer"))
        elif event == messages.ANSWER:
            await self.on_answer(sender, data.get("answer"))
        elif event == messages.ICE_CANDIDATE:
            await self.on_ice_candidate(sender, data.get("candidate"))
        elif event == messages.USER_TALKING:
            self.on_user_talking(sender or data.get("userId"), bool(data.get("isTalking")))
        else:
            logger.warning(f"[Supervisor] 알 수 없는 이벤트: {event}")

    async def on_room_users(self, users: Iterable[str]) -> None:
        users = list(users)
        logger.info(f"[Supervisor] 룸 참가자: {users}")
        for user_id in users:
            if user_id == self.local_id or user_id in self.links:
                continue
            link = self._ensure_link(user_id)
            await link.create_offer()

    async def on_user_connected(self, user_id: Optional[str]) -> None:
        if not user_id or user_id == self.local_id:
            return
        logger.info(f"[Supervisor] 참가자 입장: {user_id}")
        stale = self.links.pop(user_id, None)
        if stale is not None:
            # 같은 ID로 다시 접속한 참가자: 이전 연결은 더 이상 유효하지 않음
            logger.info(f"[Supervisor] {user_id} 재접속, 기존 링크 교체")
            await stale.close()
        self._ensure_link(user_id)

    async def on_user_disconnected(self, user_id: Optional[str]) -> None:
        logger.info(f"[Supervisor] 참가자 퇴장: {user_id}")
        self._early_candidates.pop(user_id, None)
        self.remote_talking.pop(user_id, None)
        link = self.links.pop(user_id, None)
        if link is not None:
            await link.close()

    async def on_offer(self, sender: Optional[str], offer: Any) -> None:
        if not sender or sender == self.local_id:
            return
        await self._ensure_link(sender).handle_offer(offer)

    async def on_answer(self, sender: Optional[str], answer: Any) -> None:
        link = self.links.get(sender)
        if link is None:
            logger.warning(f"[Supervisor] {sender}의 answer: 링크 없음, 무시")
            return
        await link.handle_answer(answer)

    async def on_ice_candidate(self, sender: Optional[str], candidate: Any) -> None:
        if not sender:
            return
        link = self.links.get(sender)
        if link is None:
            queued = self._early_candidates.setdefault(sender, [])
            queued.append(candidate)
            logger.info(f"[Supervisor] {sender}의 candidate 버퍼링 (링크 없음, {len(queued)}개)")
            return
        await link.add_ice_candidate(candidate)

    def on_user_talking(self, user_id: Optional[str], is_talking: bool) -> None:
        if not user_id:
            return
        self.remote_talking[user_id] = is_talking
        if self._on_talking:
            self._on_talking(user_id, is_talking)

    # ------------------------------------------------------------
    # 내부
    # ------------------------------------------------------------

    def _ensure_link(self, peer_id: str) -> PeerLink:
        link = self.links.get(peer_id)
        if link is not None:
            return link
        link = PeerLink(
            peer_id,
            self.local_id,
            self.room,
            self.signaling.send,
            local_track=self.capture.track,
            connection_factory=self._connection_factory,
            sink_factory=self._sink_factory,
            pending_candidates=self._early_candidates.pop(peer_id, None),
        )
        self.links[peer_id] = link
        logger.info(f"[Supervisor] 피어 {peer_id} 링크 생성")
        return link

    async def _teardown(self) -> None:
        links, self.links = list(self.links.values()), {}
        for link in links:
            await link.close()
        self._early_candidates.clear()
        self.remote_talking.clear()
        self.capture.release()

    def _notify_error(self, message: str) -> None:
        logger.error(f"[Supervisor] {message}")
        if self._on_error:
            self._on_error(message)

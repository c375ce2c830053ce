"""원격 피어별 WebRTC 협상 상태 머신 모듈.

원격 참가자 한 명당 PeerLink 하나가 RTCPeerConnection 하나를 소유하고
offer/answer/ICE candidate 교환을 순서대로 처리합니다.

States:
    로컬이 시작하는 경우:  idle → offer_created → answer_awaited → connected
    원격이 시작하는 경우:  idle/connected → offer_received → answer_sent → connected
    종료:                  어느 상태에서든 → closed

Glare:
    양쪽이 동시에 offer를 보내면 참가자 ID가 사전순으로 작은 쪽이 offerer입니다.
    - 로컬 ID가 작으면 원격 offer를 무시 (상대가 우리 offer에 answer함)
    - 로컬 ID가 크면 로컬 시도를 버리고 연결을 새로 만든 뒤 원격 offer에 answer

ICE Candidates:
    remote description이 적용되기 전에 도착한 candidate는 버퍼에 쌓았다가
    적용 직후 도착 순서대로 추가합니다.

Note:
    - 모든 전이는 링크별 asyncio.Lock 아래에서 직렬로 실행됨
    - 협상 실패는 로그만 남기고 failed로 표시, 상위로 전파하지 않음 (자동 재시도 없음)
"""
import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiortc import MediaStreamTrack, RTCIceCandidate, RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaBlackhole
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..signaling import messages
from .config import ice_config

logger = logging.getLogger(__name__)

SignalFn = Callable[[str, Dict[str, Any]], Awaitable[Any]]


class NegotiationError(Exception):
    """세션 디스크립션 생성/적용 실패."""


class LinkState(str, enum.Enum):
    IDLE = "idle"
    OFFER_CREATED = "offer_created"
    ANSWER_AWAITED = "answer_awaited"
    OFFER_RECEIVED = "offer_received"
    ANSWER_SENT = "answer_sent"
    CONNECTED = "connected"
    CLOSED = "closed"


def description_to_dict(description: RTCSessionDescription) -> dict:
    return {"sdp": description.sdp, "type": description.type}


def description_from_dict(data: Any) -> RTCSessionDescription:
    """``{"sdp", "type"}`` 객체를 RTCSessionDescription으로 변환합니다.

    Raises:
        NegotiationError: 필드가 없거나 형식이 잘못된 경우
    """
    if not isinstance(data, dict) or "sdp" not in data or "type" not in data:
        raise NegotiationError(f"Malformed session description: {data!r}")
    try:
        return RTCSessionDescription(sdp=data["sdp"], type=data["type"])
    except ValueError as e:
        raise NegotiationError(str(e)) from e


def candidate_to_dict(candidate: RTCIceCandidate) -> dict:
    return {
        "candidate": "candidate:" + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


def candidate_from_dict(data: Any) -> Optional[RTCIceCandidate]:
    """브라우저 형식 ICE candidate를 RTCIceCandidate로 변환합니다.

    Returns:
        Optional[RTCIceCandidate]: end-of-candidates(빈 문자열)이면 None

    Raises:
        NegotiationError: candidate 문자열을 해석할 수 없는 경우
    """
    if not isinstance(data, dict):
        raise NegotiationError(f"Malformed ICE candidate: {data!r}")

    # {"candidate": {"candidate": ..., "sdpMid": ...}} 형태도 허용
    inner = data.get("candidate")
    if isinstance(inner, dict):
        data = inner
        inner = data.get("candidate")

    candidate_str = inner or ""
    if not candidate_str:
        return None
    if candidate_str.startswith("candidate:"):
        candidate_str = candidate_str[len("candidate:"):]

    try:
        candidate = candidate_from_sdp(candidate_str)
    except (AssertionError, ValueError, IndexError) as e:
        raise NegotiationError(f"Malformed ICE candidate: {candidate_str!r}") from e
    candidate.sdpMid = data.get("sdpMid")
    candidate.sdpMLineIndex = data.get("sdpMLineIndex")
    return candidate


def default_connection_factory() -> RTCPeerConnection:
    return RTCPeerConnection(configuration=ice_config.rtc_configuration())


class PeerLink:
    """원격 참가자 한 명과의 협상 상태와 전송 연결을 관리하는 클래스.

    Attributes:
        peer_id (str): 원격 참가자 ID
        local_id (str): 로컬 참가자 ID (glare 판정에 사용)
        room (str): 협상 메시지를 보낼 룸
        state (LinkState): 현재 협상 상태
        failed (bool): 협상 실패로 링크가 동작하지 않는 상태인지 여부
        pc (RTCPeerConnection): 전송 레벨 연결
        pending_candidates (List[dict]): remote description 적용 전 도착한 candidate
        sink: 원격 오디오 출력 (트랙 수신 전에는 None)
    """

    def __init__(
        self,
        peer_id: str,
        local_id: str,
        room: str,
        signal: SignalFn,
        local_track: Optional[MediaStreamTrack] = None,
        connection_factory: Callable[[], RTCPeerConnection] = default_connection_factory,
        sink_factory: Callable[[], Any] = MediaBlackhole,
        pending_candidates: Optional[List[dict]] = None
    ):
        self.peer_id = peer_id
        self.local_id = local_id
        self.room = room
        self.state = LinkState.IDLE
        self.failed = False
        self.pending_candidates: List[dict] = list(pending_candidates or [])
        self.sink = None

        self._signal = signal
        self._local_track = local_track
        self._connection_factory = connection_factory
        self._sink_factory = sink_factory
        self._lock = asyncio.Lock()

        self.pc = self._new_connection()

    @property
    def is_offerer(self) -> bool:
        """glare 발생 시 이 쪽이 offer를 유지하는지 여부."""
        return self.local_id < self.peer_id

    def _new_connection(self) -> RTCPeerConnection:
        pc = self._connection_factory()
        if self._local_track is not None:
            pc.addTrack(self._local_track)

        @pc.on("track")
        async def on_track(track: MediaStreamTrack):
            logger.info(f"[WebRTC] 피어 {self.peer_id} {track.kind} 트랙 수신")
            if track.kind != "audio" or self.state == LinkState.CLOSED:
                return
            await self._stop_sink()
            self.sink = self._sink_factory()
            self.sink.addTrack(track)
            await self.sink.start()

        @pc.on("icecandidate")
        async def on_ice_candidate(candidate):
            if candidate is None or self.state == LinkState.CLOSED:
                return
            await self._signal(messages.ICE_CANDIDATE, {
                "room": self.room,
                "candidate": candidate_to_dict(candidate),
                "to": self.peer_id,
            })

        @pc.on("connectionstatechange")
        async def on_connection_state_change():
            logger.info(f"[WebRTC] 피어 {self.peer_id} 연결 상태: {pc.connectionState}")
            if pc.connectionState == "failed" and pc is self.pc:
                self.failed = True
                logger.warning(f"[WebRTC] 피어 {self.peer_id} 연결 실패, 재입장 전까지 비활성")

        return pc

    def _transition(self, state: LinkState) -> None:
        logger.debug(f"[WebRTC] 피어 {self.peer_id}: {self.state.value} → {state.value}")
        self.state = state

    async def create_offer(self) -> bool:
        """로컬 offer를 만들어 적용하고 상대에게 전송합니다.

        Returns:
            bool: offer 전송 여부. 실패 시 idle 상태로 남음
        """
        async with self._lock:
            if self.state != LinkState.IDLE:
                logger.info(f"[WebRTC] 피어 {self.peer_id} offer 생략 (상태: {self.state.value})")
                return False
            try:
                offer = await self.pc.createOffer()
                await self.pc.setLocalDescription(offer)
            except Exception as e:
                self.failed = True
                logger.error(f"[WebRTC] 피어 {self.peer_id} offer 생성 실패: {e}")
                return False

            self._transition(LinkState.OFFER_CREATED)
            await self._signal(messages.OFFER, {
                "room": self.room,
                "offer": description_to_dict(self.pc.localDescription),
                "to": self.peer_id,
            })
            self._transition(LinkState.ANSWER_AWAITED)
            logger.info(f"[WebRTC] 피어 {self.peer_id}에게 offer 전송")
            return True

    async def handle_offer(self, offer: Any) -> bool:
        """원격 offer를 적용하고 answer를 만들어 전송합니다.

        Returns:
            bool: answer 전송 여부
        """
        async with self._lock:
            if self.state in (LinkState.OFFER_CREATED, LinkState.ANSWER_AWAITED):
                if self.is_offerer:
                    logger.info(f"[WebRTC] glare: 피어 {self.peer_id} offer 무시 (로컬이 offerer)")
                    return False
                logger.info(f"[WebRTC] glare: 로컬 offer 취소, 피어 {self.peer_id} offer 수락")
                await self._reset_connection()
            elif self.state not in (LinkState.IDLE, LinkState.CONNECTED):
                logger.warning(f"[WebRTC] 피어 {self.peer_id} offer 무시 (상태: {self.state.value})")
                return False

            try:
                await self.pc.setRemoteDescription(description_from_dict(offer))
                self._transition(LinkState.OFFER_RECEIVED)
                await self._flush_candidates()
                answer = await self.pc.createAnswer()
                await self.pc.setLocalDescription(answer)
            except Exception as e:
                self.failed = True
                logger.error(f"[WebRTC] 피어 {self.peer_id} offer 처리 실패: {e}")
                return False

            await self._signal(messages.ANSWER, {
                "room": self.room,
                "answer": description_to_dict(self.pc.localDescription),
                "to": self.peer_id,
            })
            self._transition(LinkState.ANSWER_SENT)
            self._transition(LinkState.CONNECTED)
            logger.info(f"[WebRTC] 피어 {self.peer_id}에게 answer 전송")
            return True

    async def handle_answer(self, answer: Any) -> bool:
        """대기 중인 로컬 offer에 원격 answer를 적용합니다.

        대기 중인 offer가 없으면 로그만 남기고 무시합니다.
        """
        async with self._lock:
            if self.state != LinkState.ANSWER_AWAITED:
                logger.warning(f"[WebRTC] 피어 {self.peer_id} 대기 중인 offer 없음, answer 무시")
                return False
            try:
                await self.pc.setRemoteDescription(description_from_dict(answer))
            except Exception as e:
                self.failed = True
                logger.error(f"[WebRTC] 피어 {self.peer_id} answer 적용 실패: {e}")
                return False

            self._transition(LinkState.CONNECTED)
            await self._flush_candidates()
            logger.info(f"[WebRTC] 피어 {self.peer_id} 협상 완료")
            return True

    async def add_ice_candidate(self, candidate: Any) -> None:
        """원격 ICE candidate를 추가합니다. remote description 전이면 버퍼에 쌓습니다."""
        async with self._lock:
            if self.state == LinkState.CLOSED:
                return
            if self.pc.remoteDescription is None:
                self.pending_candidates.append(candidate)
                logger.debug(f"[WebRTC] 피어 {self.peer_id} candidate 버퍼링 ({len(self.pending_candidates)}개)")
                return
            await self._apply_candidate(candidate)

    async def close(self) -> None:
        """전송 연결과 원격 오디오 출력을 정리합니다. 여러 번 호출해도 안전합니다."""
        async with self._lock:
            if self.state == LinkState.CLOSED:
                return
            self._transition(LinkState.CLOSED)
            self.pending_candidates.clear()
            await self.pc.close()
            await self._stop_sink()
            logger.info(f"[WebRTC] 피어 {self.peer_id} 링크 종료")

    async def _reset_connection(self) -> None:
        old = self.pc
        self.pc = self._new_connection()
        self._transition(LinkState.IDLE)
        await old.close()

    async def _flush_candidates(self) -> None:
        queued, self.pending_candidates = self.pending_candidates, []
        for candidate in queued:
            await self._apply_candidate(candidate)

    async def _apply_candidate(self, data: Any) -> None:
        try:
            candidate = candidate_from_dict(data)
            if candidate is None:
                return
            await self.pc.addIceCandidate(candidate)
        except Exception as e:
            logger.error(f"[WebRTC] 피어 {self.peer_id} ICE candidate 추가 실패: {e}")

    async def _stop_sink(self) -> None:
        if self.sink is not None:
            sink, self.sink = self.sink, None
            await sink.stop()

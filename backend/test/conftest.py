"""공용 테스트 fixture.

WebSocket, RTCPeerConnection, 마이크 캡처, 시그널링 채널을 메모리 내 가짜 객체로 대체합니다.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest
from aiortc import RTCSessionDescription
from fastapi import WebSocketDisconnect
from pyee.asyncio import AsyncIOEventEmitter

from walkie.signaling import RoomRegistry, SignalingBroadcaster, RelaySession
from walkie.webrtc import CaptureUnavailableError

HOST_CANDIDATE = {
    "candidate": "candidate:1 1 UDP 2130706431 192.168.1.10 54321 typ host",
    "sdpMid": "0",
    "sdpMLineIndex": 0,
}


class FakeWebSocket:
    """send_json으로 보낸 메시지를 기록하고, 큐에 넣은 텍스트를 수신하는 WebSocket."""

    def __init__(self, fail_send: bool = False):
        self.sent: List[dict] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.fail_send = fail_send
        self.closed_code: Optional[int] = None

    async def send_json(self, message: dict) -> None:
        if self.fail_send:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    async def receive_text(self) -> str:
        raw = await self.incoming.get()
        if raw is None:
            raise WebSocketDisconnect(code=1000)
        return raw

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed_code = code

    def events(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, event: str) -> List[dict]:
        return [m["data"] for m in self.sent if m["type"] == event]


class FakePeerConnection(AsyncIOEventEmitter):
    """aiortc RTCPeerConnection의 협상 관련 인터페이스만 흉내내는 가짜 연결."""

    def __init__(self, fail_offer: bool = False, fail_remote: bool = False):
        super().__init__()
        self.localDescription: Optional[RTCSessionDescription] = None
        self.remoteDescription: Optional[RTCSessionDescription] = None
        self.connectionState = "new"
        self.tracks: List[Any] = []
        self.candidates: List[Any] = []
        self.closed = False
        self.fail_offer = fail_offer
        self.fail_remote = fail_remote
        self.offers_created = 0

    def addTrack(self, track):
        self.tracks.append(track)

    async def createOffer(self):
        if self.fail_offer:
            raise RuntimeError("cannot create offer")
        self.offers_created += 1
        return RTCSessionDescription(sdp=f"v=0 offer-{id(self)}", type="offer")

    async def createAnswer(self):
        return RTCSessionDescription(sdp=f"v=0 answer-{id(self)}", type="answer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        if self.fail_remote:
            raise ValueError("bad description")
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        self.candidates.append(candidate)

    async def close(self):
        self.closed = True
        self.connectionState = "closed"


class ConnectionFactory:
    """생성한 FakePeerConnection을 모두 기억하는 팩토리."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created: List[FakePeerConnection] = []

    def __call__(self) -> FakePeerConnection:
        pc = FakePeerConnection(**self.kwargs)
        self.created.append(pc)
        return pc


class FakeSink:
    def __init__(self):
        self.tracks = []
        self.started = False
        self.stopped = False

    def addTrack(self, track):
        self.tracks.append(track)

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


class FakeCapture:
    """MicrophoneCapture 대역. 획득/해제 횟수와 게이트 상태를 기록합니다."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.track = None
        self.acquired = 0
        self.released = 0
        self.enabled: Optional[bool] = None

    async def acquire(self):
        if self.fail:
            raise CaptureUnavailableError("Microphone access denied.")
        self.acquired += 1
        self.track = object()
        return self.track

    def enable_output(self, enabled: bool) -> bool:
        if self.track is None:
            return False
        self.enabled = enabled
        return True

    def release(self) -> None:
        self.released += 1
        self.track = None


class RecordingSignaling:
    """send()로 보낸 (이벤트, payload)를 기록하는 시그널링 채널."""

    def __init__(self, connected: bool = True):
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.connected = connected

    async def send(self, event: str, data: Dict[str, Any]) -> bool:
        if not self.connected:
            return False
        self.sent.append((event, data))
        return True

    def of_type(self, event: str) -> List[Dict[str, Any]]:
        return [data for name, data in self.sent if name == event]


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def broadcaster() -> SignalingBroadcaster:
    return SignalingBroadcaster()


@pytest.fixture
def make_session(registry, broadcaster):
    """가짜 WebSocket에 연결된 RelaySession을 만드는 팩토리."""

    def _make(session_id: Optional[str] = None, **ws_kwargs) -> RelaySession:
        return RelaySession(FakeWebSocket(**ws_kwargs), registry, broadcaster, session_id=session_id)

    return _make


async def drain_events():
    """pyee가 예약한 비동기 핸들러가 실행되도록 이벤트 루프를 몇 번 돌립니다."""
    for _ in range(5):
        await asyncio.sleep(0)

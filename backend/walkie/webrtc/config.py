"""WebRTC 클라이언트 설정.

시그널링 서버 주소, TURN/STUN 서버, 오디오 입출력 장치 등 환경변수 기반 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional

from aiortc import RTCConfiguration, RTCIceServer
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# 시그널링 서버
# ============================================================

@dataclass(frozen=True)
class SignalingConfig:
    """시그널링 서버 접속 설정."""

    BACKEND_URL: str = os.getenv("BACKEND_URL", "ws://localhost:3001/ws")


# ============================================================
# ICE Server 설정
# ============================================================

@dataclass(frozen=True)
class ICEServerConfig:
    """ICE 서버 설정."""

    # TURN 서버
    TURN_SERVER_URL: Optional[str] = os.getenv("TURN_SERVER_URL")
    TURN_USERNAME: Optional[str] = os.getenv("TURN_USERNAME")
    TURN_CREDENTIAL: Optional[str] = os.getenv("TURN_CREDENTIAL")

    # STUN 서버
    STUN_SERVER_URL: Optional[str] = os.getenv("STUN_SERVER_URL")

    # 기본 공개 STUN 서버 (fallback)
    DEFAULT_STUN_SERVERS: tuple = (
        "stun:stun.l.google.com:19302",
        "stun:global.stun.twilio.com:3478",
    )

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return all([self.TURN_SERVER_URL, self.TURN_USERNAME, self.TURN_CREDENTIAL])

    def rtc_configuration(self) -> RTCConfiguration:
        """RTCPeerConnection 생성에 쓸 RTCConfiguration을 만듭니다."""
        ice_servers: List[RTCIceServer] = []
        if self.STUN_SERVER_URL:
            ice_servers.append(RTCIceServer(urls=[self.STUN_SERVER_URL]))
        for stun_url in self.DEFAULT_STUN_SERVERS:
            ice_servers.append(RTCIceServer(urls=[stun_url]))
        if self.has_turn_server:
            ice_servers.append(RTCIceServer(
                urls=[self.TURN_SERVER_URL],
                username=self.TURN_USERNAME,
                credential=self.TURN_CREDENTIAL
            ))
        return RTCConfiguration(iceServers=ice_servers)


# ============================================================
# 오디오 입출력
# ============================================================

@dataclass(frozen=True)
class AudioConfig:
    """마이크 캡처 및 원격 오디오 출력 설정.

    입력은 aiortc MediaPlayer(ffmpeg 장치)로 열고,
    출력 장치가 설정되지 않으면 원격 오디오는 MediaBlackhole로 소비됩니다.
    """

    INPUT_DEVICE: str = os.getenv("AUDIO_INPUT_DEVICE", "default")
    INPUT_FORMAT: str = os.getenv("AUDIO_INPUT_FORMAT", "pulse")

    OUTPUT_DEVICE: Optional[str] = os.getenv("AUDIO_OUTPUT_DEVICE")
    OUTPUT_FORMAT: Optional[str] = os.getenv("AUDIO_OUTPUT_FORMAT")


# ============================================================
# 싱글톤 인스턴스
# ============================================================

signaling_config = SignalingConfig()
ice_config = ICEServerConfig()
audio_config = AudioConfig()

logger.debug(f"[WebRTC Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
logger.debug(f"[WebRTC Config] TURN 서버 설정 완료: {ice_config.has_turn_server}")

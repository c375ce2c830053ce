"""WebRTC 클라이언트 모듈.

원격 참가자별 협상 상태 머신, 피어 연결 관리, 마이크 캡처와 푸시투토크 게이트,
시그널링 클라이언트를 제공합니다.

Classes:
    PeerLink: 원격 피어별 offer/answer/ICE 협상 상태 머신
    ConnectionSupervisor: 룸 이벤트에 따라 PeerLink 생성/종료
    MicrophoneCapture: 오디오 입력 장치 획득/해제
    PushToTalkTrack: 말하기 게이트가 적용된 오디오 트랙
    SignalingClient: 시그널링 서버 WebSocket 클라이언트

Config:
    signaling_config: 시그널링 서버 주소
    ice_config: ICE 서버 설정
    audio_config: 오디오 입출력 장치 설정
"""

from .tracks import PushToTalkTrack
from .capture import MicrophoneCapture, CaptureUnavailableError
from .peer_link import PeerLink, LinkState, NegotiationError
from .supervisor import ConnectionSupervisor
from .client import SignalingClient, command_loop, generate_user_id
from .config import (
    signaling_config,
    ice_config,
    audio_config,
    SignalingConfig,
    ICEServerConfig,
    AudioConfig,
)

__all__ = [
    # Classes
    "PushToTalkTrack",
    "MicrophoneCapture",
    "CaptureUnavailableError",
    "PeerLink",
    "LinkState",
    "NegotiationError",
    "ConnectionSupervisor",
    "SignalingClient",
    "generate_user_id",
    "command_loop",
    # Config
    "signaling_config",
    "ice_config",
    "audio_config",
    "SignalingConfig",
    "ICEServerConfig",
    "AudioConfig",
]

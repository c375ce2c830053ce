"""마이크 캡처 모듈.

로컬 오디오 입력 장치를 열고 푸시투토크 게이트 트랙으로 감싸 제공합니다.
룸 세션을 끝내는 모든 경로(명시적 퇴장, 연결 끊김, 입장 실패)에서 release()가
호출되어야 장치가 해제됩니다.
"""

import logging
from typing import Callable, Optional

from aiortc.contrib.media import MediaPlayer

from .config import audio_config
from .tracks import PushToTalkTrack

logger = logging.getLogger(__name__)


class CaptureUnavailableError(Exception):
    """오디오 입력 장치를 열 수 없을 때 발생하는 예외."""


class MicrophoneCapture:
    """오디오 캡처 장치의 획득/해제와 출력 게이트를 관리하는 클래스.

    Attributes:
        device (str): ffmpeg 입력 장치 이름
        format (str): ffmpeg 입력 포맷 (pulse, alsa, avfoundation 등)
        player: 열린 MediaPlayer (획득 전에는 None)
        track (Optional[PushToTalkTrack]): 게이트가 적용된 로컬 오디오 트랙
    """

    def __init__(
        self,
        device: Optional[str] = None,
        format: Optional[str] = None,
        player_factory: Callable[..., MediaPlayer] = MediaPlayer
    ):
        self.device = device or audio_config.INPUT_DEVICE
        self.format = format or audio_config.INPUT_FORMAT
        self._player_factory = player_factory
        self.player = None
        self.track: Optional[PushToTalkTrack] = None

    @property
    def is_active(self) -> bool:
        return self.track is not None

    async def acquire(self) -> PushToTalkTrack:
        """입력 장치를 열고 음소거 상태의 게이트 트랙을 반환합니다.

        이미 획득한 상태면 기존 트랙을 그대로 반환합니다.

        Raises:
            CaptureUnavailableError: 장치를 열 수 없거나 오디오 스트림이 없을 때
        """
        if self.track is not None:
            return self.track

        try:
            player = self._player_factory(self.device, format=self.format)
        except Exception as e:
            logger.error(f"[Capture] 오디오 장치 열기 실패 ({self.format}:{self.device}): {e}")
            raise CaptureUnavailableError(
                "Microphone access denied. Please allow microphone permissions."
            ) from e

        if player.audio is None:
            self._stop_player(player)
            raise CaptureUnavailableError("No audio input available on the capture device.")

        self.player = player
        self.track = PushToTalkTrack(player.audio, enabled=False)
        logger.info(f"[Capture] 오디오 캡처 시작: {self.format}:{self.device} (음소거)")
        return self.track

    def enable_output(self, enabled: bool) -> bool:
        """게이트를 열거나 닫습니다.

        Returns:
            bool: 캡처가 활성화되어 있어 실제로 적용되었는지 여부
        """
        if self.track is None:
            return False
        self.track.enabled = enabled
        return True

    def release(self) -> None:
        """캡처 장치를 해제합니다. 획득하지 않았으면 아무것도 하지 않습니다."""
        if self.track is not None:
            self.track.stop()
            self.track = None
        if self.player is not None:
            self._stop_player(self.player)
            self.player = None
            logger.info("[Capture] 오디오 캡처 해제")

    @staticmethod
    def _stop_player(player) -> None:
        if player.audio is not None:
            player.audio.stop()

"""푸시투토크 오디오 트랙 모듈.

마이크 트랙을 감싸서 말하기 버튼이 눌려있을 때만 실제 오디오를 내보내고,
그 외에는 같은 형식의 무음 프레임을 내보냅니다.
협상(SDP)과 무관한 로컬 음소거 게이트입니다.
"""

import logging

from aiortc import MediaStreamTrack
from av import AudioFrame

logger = logging.getLogger(__name__)


class PushToTalkTrack(MediaStreamTrack):
    """enabled 플래그로 출력을 켜고 끄는 오디오 트랙.

    Attributes:
        kind (str): 트랙 종류 ("audio")
        track (MediaStreamTrack): 원본 마이크 트랙
        enabled (bool): True면 원본 프레임, False면 무음 프레임 전달

    Note:
        - 기본값은 음소거 (enabled=False)
        - 무음 프레임도 원본의 pts/time_base를 유지하므로 RTP 타임스탬프가 끊기지 않음

    Examples:
        >>> gate = PushToTalkTrack(microphone_track)
        >>> gate.enabled = True   # 말하기 시작
        >>> frame = await gate.recv()
    """
    kind = "audio"

    def __init__(self, track: MediaStreamTrack, enabled: bool = False):
        super().__init__()
        self.track = track
        self.enabled = enabled

    async def recv(self):
        frame = await self.track.recv()
        if self.enabled:
            return frame
        return self._silence_like(frame)

    @staticmethod
    def _silence_like(frame: AudioFrame) -> AudioFrame:
        silent = AudioFrame(
            format=frame.format.name,
            layout=frame.layout.name,
            samples=frame.samples
        )
        for plane in silent.planes:
            plane.update(bytes(plane.buffer_size))
        silent.pts = frame.pts
        silent.sample_rate = frame.sample_rate
        if frame.time_base is not None:
            silent.time_base = frame.time_base
        return silent

    def stop(self):
        super().stop()
        self.track.stop()

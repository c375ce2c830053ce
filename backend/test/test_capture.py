"""MicrophoneCapture / PushToTalkTrack 테스트."""

import pytest
from av import AudioFrame

from walkie.webrtc import CaptureUnavailableError, MicrophoneCapture, PushToTalkTrack


class FakeSourceTrack:
    kind = "audio"

    def __init__(self):
        self.stopped = False
        self.pts = 0

    async def recv(self):
        frame = AudioFrame(format="s16", layout="mono", samples=960)
        for plane in frame.planes:
            plane.update(b"\x01" * plane.buffer_size)
        frame.sample_rate = 48000
        frame.pts = self.pts
        self.pts += 960
        return frame

    def stop(self):
        self.stopped = True


class FakePlayer:
    def __init__(self, device, format=None, audio=True):
        self.device = device
        self.format = format
        self.audio = FakeSourceTrack() if audio else None


@pytest.mark.asyncio
async def test_acquire_starts_muted_and_release_stops_device():
    capture = MicrophoneCapture("default", "pulse", player_factory=FakePlayer)

    track = await capture.acquire()

    assert capture.is_active
    assert isinstance(track, PushToTalkTrack)
    assert track.enabled is False
    assert await capture.acquire() is track

    source = capture.player.audio
    capture.release()
    capture.release()
    assert source.stopped
    assert not capture.is_active


@pytest.mark.asyncio
async def test_acquire_failure_raises_capture_error():
    def broken_player(device, format=None):
        raise OSError("permission denied")

    capture = MicrophoneCapture("default", "pulse", player_factory=broken_player)
    with pytest.raises(CaptureUnavailableError):
        await capture.acquire()
    assert not capture.is_active


@pytest.mark.asyncio
async def test_device_without_audio_is_unavailable():
    capture = MicrophoneCapture(
        "default", "pulse", player_factory=lambda d, format=None: FakePlayer(d, format, audio=False)
    )
    with pytest.raises(CaptureUnavailableError):
        await capture.acquire()


def test_enable_output_requires_active_capture():
    capture = MicrophoneCapture("default", "pulse", player_factory=FakePlayer)
    assert capture.enable_output(True) is False


@pytest.mark.asyncio
async def test_gate_emits_silence_until_enabled():
    source = FakeSourceTrack()
    gate = PushToTalkTrack(source)

    muted = await gate.recv()
    assert muted.samples == 960
    assert muted.sample_rate == 48000
    assert muted.pts == 0
    assert bytes(muted.planes[0]) == bytes(muted.planes[0].buffer_size)

    gate.enabled = True
    live = await gate.recv()
    assert live.pts == 960
    assert set(bytes(live.planes[0])) == {1}

    gate.stop()
    assert source.stopped

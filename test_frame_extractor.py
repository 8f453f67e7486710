"""Tests for video frame sampling."""

import os
import tempfile

import cv2
import numpy as np
import pytest

from damage_detect.plugins.frame_extractor import FrameExtractor
from damage_detect.utils.data_uri import decode_data_uri
from damage_detect.utils.errors import ErrorType, FrameExtractionError


class FakeVideoSource:
    """In-memory video source recording the seeks it receives."""

    def __init__(self, duration, fail_at=None, size=(64, 48)):
        self.duration = duration
        self.fail_at = fail_at
        self.size = size
        self.seeks = []

    def seek(self, timestamp):
        self.seeks.append(timestamp)

    def read_frame(self):
        if self.fail_at is not None and len(self.seeks) - 1 == self.fail_at:
            raise RuntimeError("decoder stalled")
        width, height = self.size
        frame = np.zeros((height, width, 3), dtype=np.uint8)
        frame[:, :, 2] = min(255, len(self.seeks) * 40)
        return frame


def test_sample_times_for_short_clip():
    times = FrameExtractor().sample_times(4.2)
    assert len(times) == 5
    assert times == pytest.approx([0.42, 1.26, 2.10, 2.94, 3.78])


def test_sample_times_capped_at_six():
    times = FrameExtractor().sample_times(60.0)
    assert len(times) == 6
    assert times[0] == pytest.approx(5.0)
    assert times[-1] == pytest.approx(55.0)


def test_sub_second_clip_gives_one_midpoint_frame():
    assert FrameExtractor().sample_times(0.4) == pytest.approx([0.2])


@pytest.mark.parametrize("duration", [0, -1.0, float("nan"), float("inf")])
def test_unusable_duration_raises(duration):
    with pytest.raises(FrameExtractionError) as excinfo:
        FrameExtractor().sample_times(duration)
    assert excinfo.value.error_type == ErrorType.FRAME_EXTRACTION_FAILED


def test_extract_from_fake_source():
    source = FakeVideoSource(duration=3.0, size=(80, 60))
    frames = FrameExtractor().extract(source)

    assert [f.index for f in frames] == [0, 1, 2]
    assert [f.timestamp for f in frames] == pytest.approx([0.5, 1.5, 2.5])
    assert source.seeks == pytest.approx([0.5, 1.5, 2.5])

    content_type, data = decode_data_uri(frames[0].data_uri)
    assert content_type == "image/jpeg"
    decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert decoded.shape == (60, 80, 3)


def test_any_frame_failure_fails_whole_extraction():
    source = FakeVideoSource(duration=5.0, fail_at=3)
    with pytest.raises(FrameExtractionError) as excinfo:
        FrameExtractor().extract(source)
    assert excinfo.value.context.details["index"] == 3


def test_garbage_bytes_cannot_be_extracted():
    with pytest.raises(FrameExtractionError):
        FrameExtractor().extract_from_bytes(b"this is not a video", "video/mp4")


def test_extract_from_real_video():
    handle, path = tempfile.mkstemp(suffix=".avi")
    os.close(handle)
    try:
        writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
        for i in range(30):
            frame = np.full((48, 64, 3), i * 8, dtype=np.uint8)
            writer.write(frame)
        writer.release()

        with open(path, "rb") as f:
            video_bytes = f.read()
    finally:
        os.remove(path)

    frames = FrameExtractor(max_frames=6).extract_from_bytes(video_bytes, "video/x-msvideo")

    assert len(frames) == 3
    for frame in frames:
        _, data = decode_data_uri(frame.data_uri)
        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape == (48, 64, 3)

"""Sample still frames from an uploaded video with OpenCV."""

import logging
import math
import os
import tempfile
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np

from ..utils.data_uri import encode_data_uri
from ..utils.errors import DamageDetectError, FrameExtractionError

logger = logging.getLogger(__name__)

_SUFFIX_BY_TYPE = {
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "video/x-msvideo": ".avi",
    "video/x-matroska": ".mkv",
}


@dataclass(frozen=True)
class ExtractedFrame:
    """
    One sampled frame.

    Attributes:
        index: Position in the sampled sequence (0-based)
        timestamp: Sample time in seconds
        data_uri: JPEG frame as a data URI
    """
    index: int
    timestamp: float
    data_uri: str


class OpenCVVideoSource:
    """
    Video capability backed by ``cv2.VideoCapture``.

    OpenCV reads from a path, so the in-memory video is written to a
    temporary file for the lifetime of the source. Use as a context manager;
    one extraction pass at a time.
    """

    def __init__(self, video_bytes: bytes, content_type: str = "video/mp4"):
        self.video_bytes = video_bytes
        self.suffix = _SUFFIX_BY_TYPE.get((content_type or "").lower(), ".mp4")
        self._path: Optional[str] = None
        self._capture = None
        self._fps = 0.0
        self._frame_count = 0

    def open(self) -> "OpenCVVideoSource":
        """
        Spill the video to disk and open the capture.

        Raises:
            FrameExtractionError: If OpenCV cannot open the video
        """
        handle, path = tempfile.mkstemp(prefix="damage-detect-", suffix=self.suffix)
        with os.fdopen(handle, "wb") as f:
            f.write(self.video_bytes)
        self._path = path

        capture = cv2.VideoCapture(path)
        if not capture.isOpened():
            capture.release()
            self.close()
            raise FrameExtractionError.capture_unavailable(path)

        self._capture = capture
        self._fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
        self._frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        logger.debug(
            f"Opened video capture: fps={self._fps:.2f}, frames={self._frame_count}, "
            f"size={self.native_size}"
        )
        return self

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        if self._path and os.path.exists(self._path):
            os.remove(self._path)
        self._path = None

    def __enter__(self) -> "OpenCVVideoSource":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def duration(self) -> float:
        """Duration in seconds; 0.0 when the container does not report it."""
        if self._fps <= 0 or self._frame_count <= 0:
            return 0.0
        return self._frame_count / self._fps

    @property
    def native_size(self) -> Tuple[int, int]:
        if self._capture is None:
            return (0, 0)
        return (
            int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

    def seek(self, timestamp: float) -> None:
        """Position the capture on the frame shown at ``timestamp`` seconds."""
        if self._capture is None:
            raise RuntimeError("Video capture is not open")
        frame_number = min(int(timestamp * self._fps), max(self._frame_count - 1, 0))
        if not self._capture.set(cv2.CAP_PROP_POS_FRAMES, frame_number):
            raise RuntimeError(f"Seek to frame {frame_number} was rejected")

    def read_frame(self) -> np.ndarray:
        """Decode the current frame at native resolution (BGR)."""
        if self._capture is None:
            raise RuntimeError("Video capture is not open")
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise RuntimeError("No frame could be decoded at the current position")
        return frame


class FrameExtractor:
    """
    Samples up to ``max_frames`` evenly spaced frames from a video.

    The duration is cut into ``min(max_frames, ceil(duration))`` equal slices
    and the midpoint of each slice is captured, so a 4.2 s clip gives five
    frames at 0.42 s, 1.26 s, 2.10 s, 2.94 s and 3.78 s.
    """

    def __init__(self, max_frames: int = 6, jpeg_quality: int = 90, settle_delay: float = 0.0):
        """
        Initialize frame extractor.

        Args:
            max_frames: Upper bound on sampled frames
            jpeg_quality: JPEG quality (0-100) for encoded frames
            settle_delay: Seconds to wait after each seek before grabbing
        """
        self.max_frames = max_frames
        self.jpeg_quality = jpeg_quality
        self.settle_delay = settle_delay

    @classmethod
    def from_config(cls, config) -> "FrameExtractor":
        return cls(
            max_frames=config.extraction.max_frames,
            jpeg_quality=config.extraction.jpeg_quality,
        )

    def sample_times(self, duration: float) -> List[float]:
        """
        Compute sample timestamps for a video of ``duration`` seconds.

        Raises:
            FrameExtractionError: If the duration is not a positive finite number
        """
        if not isinstance(duration, (int, float)) or not math.isfinite(duration) or duration <= 0:
            raise FrameExtractionError.invalid_duration(duration)

        frame_count = min(self.max_frames, math.ceil(duration))
        width = duration / frame_count
        return [i * width + width / 2 for i in range(frame_count)]

    def extract(self, source) -> List[ExtractedFrame]:
        """
        Capture every sample from an opened video source.

        Args:
            source: Object exposing ``duration``, ``seek(t)`` and
                ``read_frame()``, e.g. an opened OpenCVVideoSource

        Returns:
            Frames in increasing time order

        Raises:
            FrameExtractionError: If any step fails; no partial set is returned
        """
        start_time = time.time()
        timestamps = self.sample_times(source.duration)
        logger.info(f"Extracting {len(timestamps)} frames from {source.duration:.2f}s video")

        frames: List[ExtractedFrame] = []
        for index, timestamp in enumerate(timestamps):
            try:
                source.seek(timestamp)
                if self.settle_delay:
                    time.sleep(self.settle_delay)
                pixels = source.read_frame()
                data_uri = encode_data_uri(self.encode_jpeg(pixels), "image/jpeg")
            except DamageDetectError:
                raise
            except Exception as e:
                logger.error(f"Frame {index} at {timestamp:.2f}s failed: {str(e)}")
                raise FrameExtractionError.frame_failed(index, timestamp, e)

            frames.append(ExtractedFrame(index=index, timestamp=timestamp, data_uri=data_uri))

        logger.info(f"Extracted {len(frames)} frames in {time.time() - start_time:.3f}s")
        return frames

    def extract_from_bytes(self, video_bytes: bytes, content_type: str = "video/mp4") -> List[ExtractedFrame]:
        """Open ``video_bytes`` with OpenCV and run one extraction pass."""
        with OpenCVVideoSource(video_bytes, content_type) as source:
            return self.extract(source)

    def encode_jpeg(self, pixels: np.ndarray) -> bytes:
        ok, buffer = cv2.imencode(".jpg", pixels, [int(cv2.IMWRITE_JPEG_QUALITY), int(self.jpeg_quality)])
        if not ok:
            raise RuntimeError("JPEG encoding failed")
        return buffer.tobytes()

"""Audecode — compressed-container encoder (MP3 via ffmpeg/libmp3lame).

The encode pipeline only relies on the small interface below, so any
LAME-style streaming encoder can be injected:

    factory(channels, sample_rate, bitrate_kbps) -> encoder
    encoder.encode_buffer(int16 block of ≤ 1152 samples) -> bytes
    encoder.flush() -> bytes

:class:`FfmpegMp3Encoder` streams raw s16le PCM into an ffmpeg process over
stdin and collects the MP3 from a temporary file on flush, so stdout never
has to be drained while blocks are still being written.
"""

import os
import shutil
import subprocess
import tempfile
from typing import Callable, Protocol

import numpy as np
from numpy.typing import NDArray

from .diagnostics import CompressedEncodeFailure
from .profiles import MP3_BITRATE_KBPS, MP3_CHANNELS


class CompressedEncoder(Protocol):
    def encode_buffer(self, block: NDArray[np.int16]) -> bytes: ...
    def flush(self) -> bytes: ...


EncoderFactory = Callable[[int, int, int], CompressedEncoder]


def ffmpeg_binary() -> str:
    return os.environ.get("AUDECODE_FFMPEG", "ffmpeg")


def check_ffmpeg() -> bool:
    return shutil.which(ffmpeg_binary()) is not None


class FfmpegMp3Encoder:
    """Streaming MP3 encoder backed by an ``ffmpeg -c:a libmp3lame`` process."""

    def __init__(
        self,
        channels: int = MP3_CHANNELS,
        sample_rate: int = 44100,
        bitrate_kbps: int = MP3_BITRATE_KBPS,
    ):
        self.channels     = channels
        self.sample_rate  = sample_rate
        self.bitrate_kbps = bitrate_kbps

        fd, self._out_path = tempfile.mkstemp(suffix=".mp3")
        os.close(fd)

        cmd = [
            ffmpeg_binary(), "-hide_banner", "-loglevel", "error",
            "-f", "s16le",
            "-ar", str(sample_rate),
            "-ac", str(channels),
            "-i", "-",              # raw PCM from stdin
            "-c:a", "libmp3lame",
            "-b:a", f"{bitrate_kbps}k",
            "-f", "mp3",
            "-y", self._out_path,
        ]
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            self._cleanup()
            raise CompressedEncodeFailure(f"cannot start ffmpeg: {e}") from e

    def encode_buffer(self, block: NDArray[np.int16]) -> bytes:
        try:
            self._proc.stdin.write(np.asarray(block, dtype="<i2").tobytes())
        except (OSError, ValueError) as e:
            self._abort()
            raise CompressedEncodeFailure(f"ffmpeg stopped accepting audio: {e}") from e
        # Frames are collected from the output file on flush.
        return b""

    def flush(self) -> bytes:
        try:
            self._proc.stdin.close()
            rc = self._proc.wait()
            if rc != 0:
                raise CompressedEncodeFailure(f"ffmpeg exited with status {rc}")
            with open(self._out_path, "rb") as f:
                return f.read()
        finally:
            self._cleanup()

    def _abort(self) -> None:
        try:
            self._proc.stdin.close()
        except (OSError, ValueError):
            pass
        self._proc.kill()
        self._proc.wait()
        self._cleanup()

    def _cleanup(self) -> None:
        try:
            os.unlink(self._out_path)
        except FileNotFoundError:
            pass


def ffmpeg_factory(channels: int, sample_rate: int, bitrate_kbps: int) -> FfmpegMp3Encoder:
    return FfmpegMp3Encoder(channels, sample_rate, bitrate_kbps)

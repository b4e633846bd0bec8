"""Audecode — tone-injection encoder.

encode_samples(samples, sample_rate, settings) -> EncodeResult   (coroutine)
encode_file(path, settings)                    -> EncodeResult   (coroutine)

Pipeline
========
  PCM (mono, or stereo → mono by equal-weight average)
    → out[i] = x[i]·source_volume + (sin(2π·f1·t) + sin(2π·f2·t))·amplitude·0.5
      with t = i / sample_rate, f1 = base + 6000, f2 = base + 15000
      (processed in 5 % slices, yielding to the event loop after each)
    → quantise once: clamp [-1, 1], round to int16
    → WAV bytes   (container.wav_bytes)
    → MP3 bytes   (container.compressed_bytes through the injected encoder)

Progress milestones: 0 → 10 → 20 → 30 → 50 → (slices) → 90 → 93 → 97 → 100.
100 is reported only after both containers exist.
"""

import asyncio
import logging
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from .container import quantize, wav_bytes, compressed_bytes
from .diagnostics import CompressedEncodeFailure, DecodeFailure, EncodeResult
from .mp3 import EncoderFactory, ffmpeg_factory
from .profiles import (
    DEFAULT_SETTINGS, EncodeSettings,
    MP3_BITRATE_KBPS, MP3_CHANNELS,
    YIELD_SLICES,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class _Progress:
    """Forwards progress to the caller, never letting it go backwards."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self.value     = 0.0

    def __call__(self, percent: float) -> None:
        percent    = min(100.0, max(self.value, float(percent)))
        self.value = percent
        if self._callback is not None:
            self._callback(percent)


# ── input stage ───────────────────────────────────────────────────────────────

def to_mono(samples) -> NDArray[np.float64]:
    """Return a 1-D float64 view of *samples*, averaging L/R if stereo.

    Accepts shape (n,) or (n, channels) with channels ∈ {1, 2}.
    Raises DecodeFailure for anything else.
    """
    try:
        data = np.asarray(samples, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise DecodeFailure(f"samples are not numeric audio: {e}") from e

    if data.ndim == 1:
        return data
    if data.ndim != 2:
        raise DecodeFailure(f"expected (n,) or (n, channels) samples, got shape {data.shape}")
    if data.shape[1] == 1:
        return data[:, 0]
    if data.shape[1] == 2:
        return 0.5 * (data[:, 0] + data[:, 1])
    raise DecodeFailure(f"unsupported channel count: {data.shape[1]} (mono or stereo only)")


# ── tone injection ────────────────────────────────────────────────────────────

def mix_tones(
    original: NDArray[np.floating],
    sample_rate: int,
    settings: EncodeSettings,
    start: int = 0,
) -> NDArray[np.float64]:
    """Mix both tones into *original*, which starts at absolute index *start*."""
    t      = np.arange(start, start + len(original), dtype=np.float64) / sample_rate
    sine1  = np.sin(2 * np.pi * settings.freq1 * t)
    sine2  = np.sin(2 * np.pi * settings.freq2 * t)
    return original * settings.source_volume + (sine1 + sine2) * settings.amplitude * 0.5


async def _inject(
    mono: NDArray[np.float64],
    sample_rate: int,
    settings: EncodeSettings,
    progress: _Progress,
) -> NDArray[np.float32]:
    n       = len(mono)
    encoded = np.empty(n, dtype=np.float32)
    step    = max(1, n // YIELD_SLICES)

    for start in range(0, n, step):
        end = min(n, start + step)
        encoded[start:end] = mix_tones(mono[start:end], sample_rate, settings, start)
        progress(50 + (end / n) * 40)
        await asyncio.sleep(0)

    return encoded


# ── encode ────────────────────────────────────────────────────────────────────

async def encode_samples(
    samples,
    sample_rate: int,
    settings: EncodeSettings = DEFAULT_SETTINGS,
    *,
    progress: Optional[ProgressCallback] = None,
    compressed: bool = True,
    encoder_factory: EncoderFactory = ffmpeg_factory,
    bitrate_kbps: int = MP3_BITRATE_KBPS,
) -> EncodeResult:
    """Obfuscate *samples* and serialise the result.

    Args:
        samples:         float PCM in [-1, 1], shape (n,) or (n, 2).
        sample_rate:     Hz.
        settings:        Tone parameters.
        progress:        Called with non-decreasing percentages 0..100.
        compressed:      Also produce the MP3 container.
        encoder_factory: ``(channels, sample_rate, bitrate_kbps) -> encoder``.

    Returns:
        :class:`EncodeResult` with the float32 mono buffer and both containers.

    Raises:
        DecodeFailure:           input is not usable audio; nothing is produced.
        CompressedEncodeFailure: MP3 step failed; ``exc.result`` holds the WAV.
    """
    report = _Progress(progress)
    report(0)

    if not isinstance(sample_rate, (int, np.integer)) or sample_rate <= 0:
        raise DecodeFailure(f"invalid sample rate: {sample_rate!r}")
    mono = to_mono(samples)
    report(10)

    logger.info("encoding %d samples @ %d Hz with tones %.0f Hz, %.0f Hz",
                len(mono), sample_rate, settings.freq1, settings.freq2)
    report(20)
    report(30)
    report(50)

    encoded = await _inject(mono, int(sample_rate), settings, report)
    report(90)

    # Both containers come from this one quantised buffer.
    pcm = quantize(encoded)
    result = EncodeResult(
        pcm_buffer=encoded,
        sample_rate=int(sample_rate),
        uncompressed_container_bytes=wav_bytes(pcm, sample_rate),
    )
    report(93)
    result.progress_percent = report.value

    if compressed:
        try:
            mp3 = encoder_factory(MP3_CHANNELS, int(sample_rate), bitrate_kbps)
            result.compressed_container_bytes = compressed_bytes(pcm, mp3)
        except CompressedEncodeFailure as e:
            e.result = result
            logger.error("compressed encode failed: %s", e)
            raise
        except Exception as e:
            logger.error("compressed encode failed: %s", e)
            raise CompressedEncodeFailure(str(e), result) from e
    report(97)

    report(100)
    result.progress_percent = report.value
    return result


async def encode_file(
    path: str,
    settings: EncodeSettings = DEFAULT_SETTINGS,
    **kwargs,
) -> EncodeResult:
    """Read *path* with soundfile and run :func:`encode_samples` on it."""
    import soundfile as sf

    try:
        data, sr = sf.read(path, dtype="float32", always_2d=False)
    except (RuntimeError, OSError) as e:
        raise DecodeFailure(f"cannot decode {path}: {e}") from e
    return await encode_samples(data, sr, settings, **kwargs)

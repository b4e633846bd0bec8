"""Audecode — offline decode.

Renders a whole buffer through the same chain the live controller attaches,
on a private engine that is released before returning.
"""

import logging

import numpy as np
from numpy.typing import NDArray

from .diagnostics import DecodeFailure
from .graph import ProcessingEngine, build_session
from .media import BufferSource
from .profiles import FILTER_SPECS, OUTPUT_GAIN, RENDER_BLOCK

logger = logging.getLogger(__name__)


async def decode_samples(
    samples,
    sample_rate: int,
    *,
    filters=FILTER_SPECS,
    output_gain: float = OUTPUT_GAIN,
    block_size: int = RENDER_BLOCK,
) -> NDArray[np.float32]:
    """Return the mono decoded signal for *samples* (shape (n,) or (n, 2))."""
    data = np.asarray(samples, dtype=np.float32)
    if data.ndim not in (1, 2) or (data.ndim == 2 and data.shape[1] not in (1, 2)):
        raise DecodeFailure(f"unsupported sample layout: {data.shape}")

    rendered = []
    engine   = ProcessingEngine(sample_rate, sink=rendered.append)
    media    = BufferSource(data, sample_rate, block_size=block_size)
    try:
        build_session(engine, media, filters, output_gain)
        media.play()
        while media.pump() is not None:
            pass
    finally:
        await engine.close()
        media.release()

    if not rendered:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate(rendered).astype(np.float32)


async def decode_file(path: str, **kwargs) -> tuple[NDArray[np.float32], int]:
    """Read *path* with soundfile and decode it.  Returns (samples, sample_rate)."""
    import soundfile as sf

    try:
        data, sr = sf.read(path, dtype="float32", always_2d=False)
    except (RuntimeError, OSError) as e:
        raise DecodeFailure(f"cannot decode {path}: {e}") from e
    logger.info("decoding %s (%d samples @ %d Hz)", path, len(data), sr)
    return await decode_samples(data, sr, **kwargs), sr

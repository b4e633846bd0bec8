"""Audecode — container serialisation.

Uncompressed: canonical 44-byte RIFF/WAVE header + interleaved int16 LE PCM.

Layout (all multi-byte integers little-endian):
  [0:4]   "RIFF"
  [4:8]   file_size - 8        uint32
  [8:12]  "WAVE"
  [12:16] "fmt "
  [16:20] fmt chunk size = 16  uint32
  [20:22] audio format = 1     uint16 (PCM)
  [22:24] channels             uint16
  [24:28] sample_rate          uint32
  [28:32] byte_rate            uint32 = sample_rate × block_align
  [32:34] block_align          uint16 = channels × 2
  [34:36] bits_per_sample = 16 uint16
  [36:40] "data"
  [40:44] data_size            uint32
  ── 44 bytes total ──

Compressed: int16 blocks handed to a :class:`~audecode.mp3.CompressedEncoder`.
"""

import struct
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from .profiles import (
    WAV_HEADER_LEN, BITS_PER_SAMPLE, INT16_SCALE,
    MP3_BLOCK_SIZE,
)

# struct format: <4s I    4s    4s     I        H       H         I     I         H            H    4s     I
# Field:          riff size  wave  "fmt " fmt_size format  channels  rate  byte_rate block_align  bps  "data" data_size
_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")
assert _STRUCT.size == WAV_HEADER_LEN, f"WAV header struct size mismatch: {_STRUCT.size}"

_PCM_FORMAT = 1
_FMT_SIZE   = 16


@dataclass
class WavHeader:
    """Parsed representation of the 44-byte canonical WAV header."""

    channels:    int
    sample_rate: int
    data_size:   int

    @property
    def block_align(self) -> int:
        return self.channels * (BITS_PER_SAMPLE // 8)

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.block_align

    @property
    def file_size(self) -> int:
        return WAV_HEADER_LEN + self.data_size

    @property
    def n_frames(self) -> int:
        return self.data_size // self.block_align if self.block_align else 0

    def pack(self) -> bytes:
        return _STRUCT.pack(
            b"RIFF", self.file_size - 8, b"WAVE",
            b"fmt ", _FMT_SIZE, _PCM_FORMAT, self.channels,
            self.sample_rate, self.byte_rate, self.block_align, BITS_PER_SAMPLE,
            b"data", self.data_size,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "WavHeader":
        """Parse and validate the first 44 bytes of *data*.

        Raises ValueError on anything that is not a canonical 16-bit PCM header.
        """
        if len(data) < WAV_HEADER_LEN:
            raise ValueError(f"WAV too short: {len(data)} < {WAV_HEADER_LEN} bytes")
        (riff, riff_size, wave, fmt, fmt_size, fmt_tag, channels, rate,
         byte_rate, block_align, bps, data_id, data_size) = _STRUCT.unpack_from(data)
        if riff != b"RIFF" or wave != b"WAVE":
            raise ValueError("not a RIFF/WAVE file")
        if fmt != b"fmt " or fmt_size != _FMT_SIZE or fmt_tag != _PCM_FORMAT:
            raise ValueError("fmt chunk is not 16-byte PCM")
        if data_id != b"data":
            raise ValueError("data chunk does not follow fmt chunk")
        if bps != BITS_PER_SAMPLE:
            raise ValueError(f"unsupported bits/sample: {bps}")
        header = cls(channels=channels, sample_rate=rate, data_size=data_size)
        if block_align != header.block_align or byte_rate != header.byte_rate:
            raise ValueError("inconsistent block_align / byte_rate")
        if riff_size != header.file_size - 8:
            raise ValueError(f"RIFF size {riff_size} != {header.file_size - 8}")
        return header


def parse_wav_header(data: bytes) -> WavHeader:
    return WavHeader.unpack(data)


# ── quantisation ──────────────────────────────────────────────────────────────

def quantize(samples: NDArray[np.floating]) -> NDArray[np.int16]:
    """Clamp to [-1, 1] and round to the nearest int16 step.

    This is the only place clipping happens; the encoder mix is unclipped.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    return np.round(clipped * INT16_SCALE).astype(np.int16)


# ── uncompressed container ────────────────────────────────────────────────────

def wav_bytes(pcm: NDArray[np.int16], sample_rate: int) -> bytes:
    """Serialise int16 PCM of shape (n,) or (n, channels) to WAV bytes."""
    pcm      = np.asarray(pcm, dtype=np.int16)
    channels = 1 if pcm.ndim == 1 else pcm.shape[1]
    body     = pcm.astype("<i2").tobytes()     # row-major → interleaved frames
    header   = WavHeader(channels=channels, sample_rate=int(sample_rate),
                         data_size=len(body))
    return header.pack() + body


# ── compressed container ──────────────────────────────────────────────────────

def iter_blocks(pcm: NDArray[np.int16], block_size: int = MP3_BLOCK_SIZE):
    """Yield full *block_size* blocks, then the remainder block once (if any)."""
    n_full = len(pcm) // block_size
    for b in range(n_full):
        yield pcm[b * block_size:(b + 1) * block_size]
    if len(pcm) % block_size:
        yield pcm[n_full * block_size:]


def compressed_bytes(
    pcm: NDArray[np.int16],
    encoder,
    *,
    block_size: int = MP3_BLOCK_SIZE,
    on_block: Optional[Callable[[int, int], None]] = None,
) -> bytes:
    """Feed *pcm* to *encoder* block by block, flush, and join the chunks.

    Args:
        pcm:        Mono int16 samples.
        encoder:    Object with ``encode_buffer(block) -> bytes`` and
                    ``flush() -> bytes``.
        on_block:   Optional ``(done, total)`` callback after each block.

    Returns:
        All emitted chunks concatenated in emission order.
    """
    total  = -(-len(pcm) // block_size)
    chunks = []
    for i, block in enumerate(iter_blocks(pcm, block_size)):
        out = encoder.encode_buffer(block)
        if out:
            chunks.append(bytes(out))
        if on_block is not None:
            on_block(i + 1, total)
    tail = encoder.flush()
    if tail:
        chunks.append(bytes(tail))
    return b"".join(chunks)

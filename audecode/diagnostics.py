"""Audecode — error taxonomy and result types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class FailureCode(str, Enum):
    """Machine-readable reason attached to every :class:`AudecodeError`."""

    OK                  = "ok"
    ENGINE_UNAVAILABLE  = "engine_unavailable"  # processing engine could not be created
    ENGINE_CLOSED       = "engine_closed"       # operation on a released engine
    GRAPH_BUILD         = "graph_build"         # decode chain could not be wired
    DECODE_FAILURE      = "decode_failure"      # encoder input could not be read
    DISCONNECT          = "disconnect"          # stage refused to disconnect
    COMPRESSED_ENCODE   = "compressed_encode"   # MP3 collaborator failed


class AudecodeError(Exception):
    """Base class for every error raised by this package."""

    code = FailureCode.OK

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}" if self.message else self.code.value


class EngineUnavailable(AudecodeError):
    code = FailureCode.ENGINE_UNAVAILABLE


class EngineClosed(AudecodeError):
    code = FailureCode.ENGINE_CLOSED


class GraphBuildError(AudecodeError):
    code = FailureCode.GRAPH_BUILD


class DecodeFailure(AudecodeError):
    code = FailureCode.DECODE_FAILURE


class DisconnectError(AudecodeError):
    """A single stage failed to disconnect.  Collected, never raised by teardown."""

    code = FailureCode.DISCONNECT

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


class CompressedEncodeFailure(AudecodeError):
    """MP3 production failed.  ``result`` still carries the finished WAV."""

    code = FailureCode.COMPRESSED_ENCODE

    def __init__(self, message: str, result: Optional["EncodeResult"] = None):
        super().__init__(message)
        self.result = result


@dataclass
class EncodeResult:
    """Outcome of :func:`audecode.encode_samples`.

    ``compressed_container_bytes`` is None only when the caller asked for no
    MP3, or when the MP3 step failed (see :class:`CompressedEncodeFailure`).
    """

    pcm_buffer:                   np.ndarray
    sample_rate:                  int
    uncompressed_container_bytes: bytes
    compressed_container_bytes:   Optional[bytes] = None
    progress_percent:             float = 0.0

    @property
    def duration_s(self) -> float:
        return len(self.pcm_buffer) / self.sample_rate if self.sample_rate else 0.0

    def summary(self) -> str:
        mp3 = (f"  mp3={len(self.compressed_container_bytes) / 1024:.1f}KB"
               if self.compressed_container_bytes is not None else "")
        return (
            f"[{self.progress_percent:.0f}%] {len(self.pcm_buffer)} samples "
            f"@ {self.sample_rate}Hz ({self.duration_s:.2f}s)  "
            f"wav={len(self.uncompressed_container_bytes) / 1024:.1f}KB{mp3}"
        )


@dataclass
class TeardownReport:
    """What a teardown did.  ``warnings`` lists stages that refused to disconnect."""

    performed:  bool = False
    released:   bool = False
    restored:   bool = False
    warnings:   list = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings

    def summary(self) -> str:
        if not self.performed:
            return "[IDLE] nothing to tear down"
        state = "released" if self.released else "release-failed"
        return f"[TEARDOWN] {state}  warnings={len(self.warnings)}"

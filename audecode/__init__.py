"""Audecode — tone-injection audio obfuscation codec.

Public API:
    encode_samples(samples, sample_rate, settings) -> EncodeResult   (coroutine)
    encode_file(path, settings)                    -> EncodeResult   (coroutine)
    decode_samples(samples, sample_rate)           -> np.ndarray     (coroutine)
    SessionController(player, ...)                 live attach/detach driver
"""

from .container import WavHeader, parse_wav_header, quantize, wav_bytes
from .controller import ControllerState, SessionController, TickOutcome
from .decoder import decode_file, decode_samples
from .diagnostics import (
    AudecodeError, CompressedEncodeFailure, DecodeFailure, DisconnectError,
    EncodeResult, EngineClosed, EngineUnavailable, FailureCode,
    GraphBuildError, TeardownReport,
)
from .encoder import encode_file, encode_samples
from .media import BufferSource, StaticPlayer, is_audecode_identity
from .prefs import JsonPreferences, MemoryPreferences
from .profiles import (
    DEFAULT_SETTINGS, FILTER_SPECS, OUTPUT_GAIN,
    EncodeSettings, FilterSpec, amplification_for,
)

__version__ = "1.0.0"
__all__ = [
    "encode_samples", "encode_file", "decode_samples", "decode_file",
    "SessionController", "ControllerState", "TickOutcome",
    "BufferSource", "StaticPlayer", "is_audecode_identity",
    "JsonPreferences", "MemoryPreferences",
    "WavHeader", "parse_wav_header", "quantize", "wav_bytes",
    "EncodeSettings", "FilterSpec", "FILTER_SPECS", "DEFAULT_SETTINGS",
    "OUTPUT_GAIN", "amplification_for",
    "AudecodeError", "CompressedEncodeFailure", "DecodeFailure",
    "DisconnectError", "EngineClosed", "EngineUnavailable", "GraphBuildError",
    "EncodeResult", "FailureCode", "TeardownReport",
]

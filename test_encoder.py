"""
test_encoder.py — tone-injection encoder tests.

  1. Mix formula against the closed form, across settings
  2. Golden fixture for an all-zero input at 8 kHz
  3. Stereo → mono downmix
  4. Progress: non-decreasing, 100 only on success
  5. Compressed container: block feeding, failure keeps the WAV
  6. Cooperative yielding
  7. Files on disk and the ffmpeg backend
"""
import asyncio
import math
import os

import numpy as np
import pytest

from audecode import (
    CompressedEncodeFailure, DecodeFailure, EncodeSettings, amplification_for,
    parse_wav_header,
)
from audecode.container import compressed_bytes, quantize
from audecode.decoder import decode_file
from audecode.encoder import encode_file, encode_samples, mix_tones, to_mono
from audecode.mp3 import FfmpegMp3Encoder, check_ffmpeg


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

class RecordingEncoder:
    """Compressed-encoder stand-in: remembers every block, emits tagged bytes."""

    instances: list = []

    def __init__(self, channels, sample_rate, bitrate_kbps):
        self.args    = (channels, sample_rate, bitrate_kbps)
        self.blocks  = []
        self.flushed = 0
        RecordingEncoder.instances.append(self)

    def encode_buffer(self, block):
        self.blocks.append(np.array(block, dtype=np.int16))
        return bytes([len(self.blocks) % 256])

    def flush(self):
        self.flushed += 1
        return b"END"


def failing_factory(channels, sample_rate, bitrate_kbps):
    raise OSError("no mp3 encoder here")


def expected_mix(original, sr, s: EncodeSettings):
    out = []
    for i, x in enumerate(original):
        t = i / sr
        out.append(x * s.source_volume
                   + (math.sin(2 * math.pi * (s.base_frequency_hz + 6000) * t)
                      + math.sin(2 * math.pi * (s.base_frequency_hz + 15000) * t))
                   * s.amplitude * 0.5)
    return np.array(out)


def run(coro):
    return asyncio.run(coro)


# ─────────────────────────────────────────────────────────────────────────────
# 1. Mix formula
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("sr,settings", [
    (8000,  EncodeSettings()),
    (44100, EncodeSettings(base_frequency_hz=750, amplitude=0.2, source_volume=0.05)),
    (48000, EncodeSettings(base_frequency_hz=300, amplitude=0.0, source_volume=1.0)),
])
def test_mix_matches_closed_form(sr, settings):
    rng      = np.random.default_rng(7)
    original = rng.uniform(-1, 1, 500)
    result   = run(encode_samples(original, sr, settings, compressed=False))
    np.testing.assert_allclose(result.pcm_buffer, expected_mix(original, sr, settings), atol=1e-6)


def test_mix_tones_respects_absolute_index():
    s     = EncodeSettings()
    whole = mix_tones(np.zeros(100), 8000, s)
    tail  = mix_tones(np.zeros(40), 8000, s, start=60)
    np.testing.assert_allclose(whole[60:], tail)


# ─────────────────────────────────────────────────────────────────────────────
# 2. Golden fixture
# ─────────────────────────────────────────────────────────────────────────────

def test_golden_zero_input():
    # (sin(2π·6600·i/8000) + sin(2π·15600·i/8000)) · 0.05
    golden = [0.0, -0.0600011755, -0.0698401120, -0.0326291260]
    result = run(encode_samples([0, 0, 0, 0], 8000, EncodeSettings(600, 0.1, 0.03),
                                compressed=False))
    assert result.pcm_buffer.dtype == np.float32
    np.testing.assert_allclose(result.pcm_buffer, golden, atol=1e-6)
    assert result.pcm_buffer[0] == 0.0


# ─────────────────────────────────────────────────────────────────────────────
# 3. Input stage
# ─────────────────────────────────────────────────────────────────────────────

def test_stereo_is_averaged():
    left   = np.array([0.2, 0.4, -1.0])
    right  = np.array([0.0, 0.4,  1.0])
    stereo = np.stack([left, right], axis=1)
    np.testing.assert_allclose(to_mono(stereo), [0.1, 0.4, 0.0])

    s = EncodeSettings()
    a = run(encode_samples(stereo, 8000, s, compressed=False)).pcm_buffer
    b = run(encode_samples(0.5 * (left + right), 8000, s, compressed=False)).pcm_buffer
    np.testing.assert_array_equal(a, b)


def test_single_column_is_mono():
    np.testing.assert_array_equal(to_mono(np.array([[0.5], [0.25]])), [0.5, 0.25])


@pytest.mark.parametrize("bad", [np.zeros((10, 3)), np.zeros((2, 2, 2)), ["a", "b"]])
def test_unusable_input_raises_decode_failure(bad):
    with pytest.raises(DecodeFailure):
        run(encode_samples(bad, 8000, compressed=False))


def test_invalid_sample_rate():
    with pytest.raises(DecodeFailure):
        run(encode_samples([0.0, 0.1], 0, compressed=False))


@pytest.mark.parametrize("kwargs", [
    {"base_frequency_hz": 0},
    {"amplitude": -0.1},
    {"source_volume": 0},
    {"source_volume": 1.5},
])
def test_settings_validation(kwargs):
    with pytest.raises(ValueError):
        EncodeSettings(**kwargs)


def test_settings_derive_tone_frequencies():
    s = EncodeSettings(base_frequency_hz=600)
    assert (s.freq1, s.freq2) == (6600, 15600)


def test_amplification_hint():
    assert amplification_for(0.03) == 100
    assert amplification_for(0.06) == 50
    assert amplification_for(0.01) == 300


# ─────────────────────────────────────────────────────────────────────────────
# 4. Progress
# ─────────────────────────────────────────────────────────────────────────────

def test_progress_is_monotonic_and_ends_at_100():
    seen   = []
    result = run(encode_samples(np.zeros(10_000), 8000, progress=seen.append,
                                encoder_factory=RecordingEncoder))
    assert seen[0] == 0
    assert seen[-1] == 100
    assert all(b >= a for a, b in zip(seen, seen[1:]))
    assert all(0 <= p <= 100 for p in seen)
    assert seen.count(100) == 1
    assert result.progress_percent == 100


def test_progress_never_reaches_100_on_decode_failure():
    seen = []
    with pytest.raises(DecodeFailure):
        run(encode_samples(np.zeros((4, 5)), 8000, progress=seen.append,
                           encoder_factory=RecordingEncoder))
    assert 100 not in seen
    assert all(b >= a for a, b in zip(seen, seen[1:]))


def test_empty_input_produces_empty_containers():
    result = run(encode_samples(np.zeros(0), 8000, encoder_factory=RecordingEncoder))
    assert len(result.pcm_buffer) == 0
    assert parse_wav_header(result.uncompressed_container_bytes).data_size == 0
    assert result.compressed_container_bytes == b"END"


# ─────────────────────────────────────────────────────────────────────────────
# 5. Compressed container
# ─────────────────────────────────────────────────────────────────────────────

def test_compressed_blocks_and_flush():
    RecordingEncoder.instances.clear()
    n      = 1152 * 2 + 100
    result = run(encode_samples(np.zeros(n), 22050, encoder_factory=RecordingEncoder))
    enc    = RecordingEncoder.instances[-1]

    assert enc.args == (1, 22050, 128)
    assert [len(b) for b in enc.blocks] == [1152, 1152, 100]
    assert enc.flushed == 1
    assert result.compressed_container_bytes == bytes([1, 2, 3]) + b"END"


def test_both_containers_share_one_quantisation():
    RecordingEncoder.instances.clear()
    rng    = np.random.default_rng(3)
    result = run(encode_samples(rng.uniform(-1, 1, 3000), 16000,
                                EncodeSettings(amplitude=1.5, source_volume=1.0),
                                encoder_factory=RecordingEncoder))
    fed    = np.concatenate(RecordingEncoder.instances[-1].blocks)
    wav    = np.frombuffer(result.uncompressed_container_bytes[44:], dtype="<i2")
    np.testing.assert_array_equal(fed, wav)
    # amplitude 1.5 drives the mix past full scale; only quantisation clips
    assert np.abs(result.pcm_buffer).max() > 1.0
    assert wav.max() == 32767


def test_compressed_failure_keeps_uncompressed_result():
    seen = []
    with pytest.raises(CompressedEncodeFailure) as info:
        run(encode_samples(np.zeros(2000), 8000, progress=seen.append,
                           encoder_factory=failing_factory))
    result = info.value.result
    assert result is not None
    assert result.compressed_container_bytes is None
    assert parse_wav_header(result.uncompressed_container_bytes).n_frames == 2000
    assert 100 not in seen


def test_skip_compressed():
    result = run(encode_samples(np.zeros(10), 8000, compressed=False,
                                encoder_factory=failing_factory))
    assert result.compressed_container_bytes is None
    assert result.progress_percent == 100


# ─────────────────────────────────────────────────────────────────────────────
# 6. Cooperative yielding
# ─────────────────────────────────────────────────────────────────────────────

def test_encoder_yields_to_event_loop():
    async def scenario():
        done  = False
        ticks = 0

        async def other_work():
            nonlocal ticks
            while not done:
                ticks += 1
                await asyncio.sleep(0)

        worker = asyncio.create_task(other_work())
        await asyncio.sleep(0)
        start = ticks
        await encode_samples(np.zeros(40_000), 8000, compressed=False)
        done = True
        await worker
        return ticks - start

    assert run(scenario()) >= 10


# ─────────────────────────────────────────────────────────────────────────────
# 7. Files on disk and the ffmpeg backend
# ─────────────────────────────────────────────────────────────────────────────

def _bin_mag(x, sr, f):
    return np.abs(np.fft.rfft(x))[int(round(f * len(x) / sr))]


def test_encode_file_rejects_non_audio(tmp_path):
    path = tmp_path / "notes.wav"
    path.write_bytes(b"this is not a RIFF file at all")
    seen = []
    with pytest.raises(DecodeFailure):
        run(encode_file(str(path), progress=seen.append, compressed=False))
    assert 100 not in seen


def test_encode_file_then_decode_file(tmp_path):
    import soundfile as sf

    sr  = 44100
    t   = np.arange(sr) / sr
    src = tmp_path / "song.wav"
    sf.write(str(src), 0.5 * np.sin(2 * np.pi * 1000 * t), sr, subtype="PCM_16")

    settings = EncodeSettings()
    result   = run(encode_file(str(src), settings, compressed=False))
    assert result.sample_rate == sr
    assert result.progress_percent == 100

    enc = tmp_path / "song - audecode.wav"
    enc.write_bytes(result.uncompressed_container_bytes)
    decoded, dec_sr = run(decode_file(str(enc)))

    assert dec_sr == sr
    assert decoded.dtype == np.float32 and len(decoded) == sr
    seg = decoded[sr // 2:]
    for tone in (settings.freq1, settings.freq2):
        assert _bin_mag(seg, sr, tone) / _bin_mag(seg, sr, 1000) < 0.01


def test_decode_file_rejects_missing_file(tmp_path):
    with pytest.raises(DecodeFailure):
        run(decode_file(str(tmp_path / "nowhere.wav")))


class _BrokenStdin:
    def write(self, data):
        raise OSError(5, "Input/output error")

    def close(self):
        pass


class _DeadProcess:
    def __init__(self, *args, **kwargs):
        self.stdin  = _BrokenStdin()
        self.killed = False

    def kill(self):
        self.killed = True

    def wait(self):
        return -9


def test_ffmpeg_pipe_error_aborts_and_cleans_up(monkeypatch):
    monkeypatch.setattr("audecode.mp3.subprocess.Popen", _DeadProcess)
    enc  = FfmpegMp3Encoder(1, 8000, 128)
    path = enc._out_path
    assert os.path.exists(path)

    with pytest.raises(CompressedEncodeFailure):
        enc.encode_buffer(np.zeros(1152, dtype=np.int16))
    assert enc._proc.killed
    assert not os.path.exists(path)


@pytest.mark.skipif(not check_ffmpeg(), reason="ffmpeg not installed")
def test_ffmpeg_encoder_produces_mp3():
    sr   = 44100
    tone = 0.3 * np.sin(2 * np.pi * 440 * np.arange(sr) / sr)
    enc  = FfmpegMp3Encoder(1, sr, 128)
    path = enc._out_path

    data = compressed_bytes(quantize(tone), enc)
    assert len(data) > 1000
    assert data[:3] == b"ID3" or data[0] == 0xFF
    assert not os.path.exists(path)


@pytest.mark.skipif(not check_ffmpeg(), reason="ffmpeg not installed")
def test_encode_samples_with_default_mp3_backend():
    result = run(encode_samples(np.zeros(8000), 8000))
    assert result.compressed_container_bytes
    assert result.progress_percent == 100

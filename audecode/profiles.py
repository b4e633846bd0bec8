"""Audecode — all compile-time constants, keyed in one place.

Nothing here is computed at runtime except the derived helpers at the bottom.
Change a value here and it propagates to both the encoder and the decoder.
"""

from dataclasses import dataclass


# ── Notch cascade ─────────────────────────────────────────────────────────────
# Cascade order, NOT frequency order.  The decoder builds stage i from
# FILTER_SPECS[i]; re-sorting changes the output.
#
#   filter_eq  → Q = eq × Q_PER_EQ_UNIT
#   filter_cut → gain_db, carried through to the stage but a notch biquad has
#                no gain term, so it never changes the response.
_FILTER_FREQUENCIES = (200, 440, 6600, 15600, 5000, 6000, 6300, 8000,
                       10000, 12500, 14000, 15000, 15500, 15900, 16000)
_FILTER_EQ          = (3, 2, 1, 1, 20, 20, 5, 40, 40, 40, 40, 40, 1, 1, 40)
_FILTER_CUT         = (1, 1, 0, 0, 1, 1, 1, 1, 1, 1, 1, 1, 0, 0, 1)

Q_PER_EQ_UNIT = 3.5
N_FILTERS     = 15


@dataclass(frozen=True)
class FilterSpec:
    """One notch stage: centre frequency, quality factor, (inert) gain."""

    frequency_hz: float
    q_factor:     float
    gain_db:      float


FILTER_SPECS: tuple[FilterSpec, ...] = tuple(
    FilterSpec(float(f), eq * Q_PER_EQ_UNIT, float(cut))
    for f, eq, cut in zip(_FILTER_FREQUENCIES, _FILTER_EQ, _FILTER_CUT)
)
assert len(FILTER_SPECS) == N_FILTERS, f"filter table size mismatch: {len(FILTER_SPECS)}"

# ── Decode graph ──────────────────────────────────────────────────────────────
OUTPUT_GAIN   = 100.0    # fixed; the decoder cannot see the encoder's source_volume
DOWNMIX_GAIN  = 0.5      # per channel, stereo → mono
BUFFER_GAIN   = 1.0      # unity attachment point between downmix and cascade
RENDER_BLOCK  = 1024     # samples per engine render quantum

# ── Encoder ───────────────────────────────────────────────────────────────────
DEFAULT_BASE_FREQUENCY = 600.0
DEFAULT_AMPLITUDE      = 0.1
DEFAULT_SOURCE_VOLUME  = 0.03

TONE1_OFFSET_HZ = 6000.0
TONE2_OFFSET_HZ = 15000.0

# Loop yields to the event loop after every 1/YIELD_SLICES of the buffer (5 %).
YIELD_SLICES = 20

# ── Containers ────────────────────────────────────────────────────────────────
WAV_HEADER_LEN  = 44
BITS_PER_SAMPLE = 16
INT16_SCALE     = 32767

MP3_BLOCK_SIZE   = 1152   # samples per MPEG-1 Layer III frame
MP3_BITRATE_KBPS = 128
MP3_CHANNELS     = 1

# ── Session controller ────────────────────────────────────────────────────────
POLL_INTERVAL_S  = 0.3
RESTART_DELAY_S  = 0.5
PREF_ENABLED_KEY = "audecoderEnabled"
PREF_ENABLED_DEFAULT = True

# Eligibility: identity strings carrying this tag (case-insensitive) decode.
IDENTITY_TAG = "audecode"


# ── derived helpers ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EncodeSettings:
    """Tone-injection parameters.  Both tones derive from ``base_frequency_hz``."""

    base_frequency_hz: float = DEFAULT_BASE_FREQUENCY
    amplitude:         float = DEFAULT_AMPLITUDE
    source_volume:     float = DEFAULT_SOURCE_VOLUME

    def __post_init__(self):
        if self.base_frequency_hz <= 0:
            raise ValueError(f"base_frequency_hz must be > 0, got {self.base_frequency_hz}")
        if self.amplitude < 0:
            raise ValueError(f"amplitude must be >= 0, got {self.amplitude}")
        if not 0 < self.source_volume <= 1:
            raise ValueError(f"source_volume must be in (0, 1], got {self.source_volume}")

    @property
    def freq1(self) -> float:
        return self.base_frequency_hz + TONE1_OFFSET_HZ

    @property
    def freq2(self) -> float:
        return self.base_frequency_hz + TONE2_OFFSET_HZ


DEFAULT_SETTINGS = EncodeSettings()


def amplification_for(source_volume: float) -> int:
    """Gain a decoder would need to bring *source_volume* back to unity.

    The live decoder always applies OUTPUT_GAIN, which is only exact for
    DEFAULT_SOURCE_VOLUME.
    """
    return round(OUTPUT_GAIN * (DEFAULT_SOURCE_VOLUME / source_volume))

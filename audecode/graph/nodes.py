"""Audecode — processing-graph node types.

Every node processes one block at a time and pushes the result to each of
its outputs.  Blocks are float arrays of shape (n,) (mono) or (n, 2).

Notch coefficients follow the RBJ "Audio EQ Cookbook" notch, which is also
what a Web Audio BiquadFilterNode of type "notch" uses:

    w0    = 2π·f0 / fs
    alpha = sin(w0) / (2Q)
    b = [1, -2cos(w0), 1] / (1 + alpha)
    a = [1, -2cos(w0) / (1 + alpha), (1 - alpha) / (1 + alpha)]

The gain term has no place in these equations, so ``gain_db`` is stored on
the node and reported, but never alters the response.
"""

import logging

import numpy as np
import scipy.signal as spsig
from numpy.typing import NDArray

from ..profiles import DOWNMIX_GAIN, FilterSpec

logger = logging.getLogger(__name__)


class Node:
    """Base node: identity processing, fan-out to connected outputs."""

    kind = "node"

    def __init__(self, engine, label: str = ""):
        self.engine  = engine
        self.label   = label or self.kind
        self.outputs: list["Node"] = []

    def connect(self, other: "Node") -> "Node":
        self.engine.check_open()
        if other.engine is not self.engine:
            raise ValueError(f"cannot connect {self.label} to a node of another engine")
        self.outputs.append(other)
        return other

    def disconnect(self) -> None:
        self.outputs.clear()

    @property
    def connected(self) -> bool:
        return bool(self.outputs)

    def process(self, block: NDArray) -> NDArray:
        return block

    def push(self, block: NDArray) -> None:
        out = self.process(block)
        for node in self.outputs:
            node.push(out)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label!r}, outputs={len(self.outputs)})"


class MediaSourceNode(Node):
    """Entry point fed by a captured media source.

    Blocks arriving while the engine is suspended or closed are dropped; the
    media keeps its own clock either way.
    """

    kind = "source"

    def __init__(self, engine, media):
        super().__init__(engine)
        self.media = media

    def push(self, block: NDArray) -> None:
        if not self.engine.running:
            return
        super().push(np.asarray(block, dtype=np.float64))


class DownmixNode(Node):
    """Split → per-channel gain → merge to one channel.  Mono passes through."""

    kind = "downmix"

    def __init__(self, engine, left_gain: float = DOWNMIX_GAIN, right_gain: float = DOWNMIX_GAIN):
        super().__init__(engine)
        self.left_gain  = left_gain
        self.right_gain = right_gain

    def process(self, block: NDArray) -> NDArray:
        if block.ndim == 1:
            return block
        if block.shape[1] == 1:
            return block[:, 0]
        return block[:, 0] * self.left_gain + block[:, 1] * self.right_gain


class GainNode(Node):
    kind = "gain"

    def __init__(self, engine, gain: float = 1.0, label: str = ""):
        super().__init__(engine, label)
        self.gain = float(gain)

    def process(self, block: NDArray) -> NDArray:
        return block * self.gain


def notch_coefficients(frequency_hz: float, q_factor: float, sample_rate: int):
    """Return (b, a) for a notch at *frequency_hz*.

    Frequencies at or beyond Nyquist (or ≤ 0) give a pass-through filter;
    Q ≤ 0 gives a full stop, matching the Web Audio edge cases.
    """
    nyquist = sample_rate / 2.0
    f = min(max(frequency_hz / nyquist, 0.0), 1.0)

    if not 0.0 < f < 1.0:
        return np.array([1.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])
    if q_factor <= 0:
        return np.array([0.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])

    w0    = np.pi * f
    alpha = np.sin(w0) / (2.0 * q_factor)
    cosw  = np.cos(w0)
    a0    = 1.0 + alpha
    b = np.array([1.0, -2.0 * cosw, 1.0]) / a0
    a = np.array([1.0, -2.0 * cosw / a0, (1.0 - alpha) / a0])
    return b, a


class NotchNode(Node):
    """Second-order notch with filter state carried across blocks."""

    kind = "notch"

    def __init__(self, engine, spec: FilterSpec, label: str = ""):
        super().__init__(engine, label)
        self.frequency_hz = spec.frequency_hz
        self.q_factor     = spec.q_factor
        self.gain_db      = spec.gain_db      # inert for a notch
        self.b, self.a    = notch_coefficients(spec.frequency_hz, spec.q_factor, engine.sample_rate)
        self._zi          = np.zeros(2)

    @property
    def params(self) -> tuple[float, float, float]:
        return (self.frequency_hz, self.q_factor, self.gain_db)

    def process(self, block: NDArray) -> NDArray:
        y, self._zi = spsig.lfilter(self.b, self.a, block, zi=self._zi)
        return y

    def response_db(self, frequency_hz: float) -> float:
        """Steady-state magnitude response at *frequency_hz*, in dB."""
        _, h = spsig.freqz(self.b, self.a, worN=[frequency_hz], fs=self.engine.sample_rate)
        return float(20.0 * np.log10(max(abs(h[0]), 1e-12)))


class DestinationNode(Node):
    """Terminal node: hands finished blocks to the engine's sink."""

    kind = "destination"

    def push(self, block: NDArray) -> None:
        self.engine.emit(block)

"""Audecode — media collaborators.

The controller only needs two small interfaces from the host environment:

  Player       identity() -> str, media() -> MediaSource | None,
               location() -> str | None
  MediaSource  paused, position, sample_rate, channels,
               play(), pause(), seek(seconds),
               capture(sink), release(),
               add_listener(cb), remove_listener(cb)   # cb(paused: bool)

:class:`BufferSource` and :class:`StaticPlayer` implement them over an
in-memory numpy buffer; the CLI and the tests drive them block by block.
"""

import logging
from typing import Callable, Optional, Protocol

import numpy as np
from numpy.typing import NDArray

from .profiles import IDENTITY_TAG, RENDER_BLOCK

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class MediaSource(Protocol):
    paused:      bool
    sample_rate: int
    channels:    int

    @property
    def position(self) -> float: ...
    def play(self) -> None: ...
    def pause(self) -> None: ...
    def seek(self, seconds: float) -> None: ...
    def capture(self, sink: Callable[[NDArray], None]) -> None: ...
    def release(self) -> None: ...
    def add_listener(self, listener: Listener) -> None: ...
    def remove_listener(self, listener: Listener) -> None: ...


class Player(Protocol):
    def identity(self) -> str: ...
    def media(self) -> Optional[MediaSource]: ...
    def location(self) -> Optional[str]: ...


def is_audecode_identity(identity: str) -> bool:
    """Default eligibility: the identity carries the ``audecode`` tag."""
    return IDENTITY_TAG in (identity or "").lower()


class BufferSource:
    """Plays a numpy buffer in fixed blocks.

    Each :meth:`pump` advances the playhead by one block while playing and
    routes the block to the capturing sink if one is attached, otherwise to
    ``output``.  Attaching a sink never moves the playhead.
    """

    def __init__(
        self,
        samples,
        sample_rate: int,
        *,
        block_size: int = RENDER_BLOCK,
        output: Optional[Callable[[NDArray], None]] = None,
    ):
        self.samples     = np.asarray(samples, dtype=np.float32)
        self.sample_rate = int(sample_rate)
        self.channels    = 1 if self.samples.ndim == 1 else self.samples.shape[1]
        self.block_size  = block_size
        self.output      = output
        self.paused      = True
        self._cursor     = 0
        self._sink       = None
        self._listeners: list[Listener] = []

    # ── transport ─────────────────────────────────────────────────────────────

    @property
    def position(self) -> float:
        return self._cursor / self.sample_rate

    @property
    def finished(self) -> bool:
        return self._cursor >= len(self.samples)

    def seek(self, seconds: float) -> None:
        self._cursor = min(len(self.samples), max(0, int(round(seconds * self.sample_rate))))

    def play(self) -> None:
        if self.paused:
            self.paused = False
            self._notify()

    def pause(self) -> None:
        if not self.paused:
            self.paused = True
            self._notify()

    def pump(self) -> Optional[NDArray]:
        """Deliver the next block (None when paused or at the end)."""
        if self.paused or self.finished:
            return None
        block = self.samples[self._cursor:self._cursor + self.block_size]
        self._cursor += len(block)
        target = self._sink if self._sink is not None else self.output
        if target is not None:
            target(block)
        if self.finished:
            self.pause()
        return block

    # ── capture ───────────────────────────────────────────────────────────────

    @property
    def captured(self) -> bool:
        return self._sink is not None

    def capture(self, sink: Callable[[NDArray], None]) -> None:
        if self._sink is not None:
            raise RuntimeError("media source is already captured by a processing engine")
        self._sink = sink

    def release(self) -> None:
        self._sink = None

    # ── listeners ─────────────────────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.paused)


class StaticPlayer:
    """A player whose identity, media and location are plain attributes."""

    def __init__(self, identity: str = "", media: Optional[MediaSource] = None,
                 location: Optional[str] = None):
        self.current_identity = identity
        self.current_media    = media
        self.current_location = location

    def identity(self) -> str:
        return self.current_identity

    def media(self) -> Optional[MediaSource]:
        return self.current_media

    def location(self) -> Optional[str]:
        return self.current_location

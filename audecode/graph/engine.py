"""Audecode — the processing engine.

One engine owns one node graph and one output sink.  It is the unit the
session controller creates and releases; only one may be live per process
at a time (enforced by the controller, not here).

States:  running ⇄ suspended → closed
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

import numpy as np

from ..diagnostics import EngineClosed, EngineUnavailable
from ..profiles import FilterSpec
from .nodes import (
    DestinationNode, DownmixNode, GainNode, MediaSourceNode, Node, NotchNode,
)

logger = logging.getLogger(__name__)

Sink = Callable[[np.ndarray], None]


class EngineState(str, Enum):
    RUNNING   = "running"
    SUSPENDED = "suspended"
    CLOSED    = "closed"


class ProcessingEngine:
    """Block-based audio graph host.

    Args:
        sample_rate: Rate all nodes are designed for (Hz).
        sink:        Receives every block reaching :attr:`destination`.
                     None discards output (still counted).
    """

    def __init__(self, sample_rate: int, sink: Optional[Sink] = None):
        if not sample_rate or sample_rate <= 0:
            raise EngineUnavailable(f"unsupported sample rate: {sample_rate!r}")
        self.sample_rate    = int(sample_rate)
        self.state          = EngineState.RUNNING
        self.frames_emitted = 0
        self._sink          = sink
        self._nodes: list[Node] = []
        self.destination    = DestinationNode(self)

    # ── state ─────────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self.state is EngineState.RUNNING

    @property
    def closed(self) -> bool:
        return self.state is EngineState.CLOSED

    def check_open(self) -> None:
        if self.closed:
            raise EngineClosed("engine already released")

    async def suspend(self) -> None:
        self.check_open()
        self.state = EngineState.SUSPENDED
        await asyncio.sleep(0)
        logger.debug("engine suspended")

    async def resume(self) -> None:
        self.check_open()
        self.state = EngineState.RUNNING
        await asyncio.sleep(0)
        logger.debug("engine resumed")

    async def close(self) -> None:
        """Release the engine.  Idempotent; every edge in the graph is dropped."""
        if self.closed:
            return
        self.state = EngineState.CLOSED
        for node in self._nodes:
            node.outputs.clear()
        self._nodes.clear()
        await asyncio.sleep(0)
        logger.debug("engine closed after %d frames", self.frames_emitted)

    # ── node factories ────────────────────────────────────────────────────────

    def _add(self, node: Node) -> Node:
        self.check_open()
        self._nodes.append(node)
        return node

    def create_media_source(self, media) -> MediaSourceNode:
        """Route *media*'s blocks into this engine.  The media keeps playing."""
        node = self._add(MediaSourceNode(self, media))
        media.capture(node.push)
        return node

    def create_downmix(self) -> DownmixNode:
        return self._add(DownmixNode(self))

    def create_gain(self, gain: float = 1.0, label: str = "") -> GainNode:
        return self._add(GainNode(self, gain, label))

    def create_notch(self, spec: FilterSpec, label: str = "") -> NotchNode:
        return self._add(NotchNode(self, spec, label))

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self._nodes)

    # ── output ────────────────────────────────────────────────────────────────

    def emit(self, block: np.ndarray) -> None:
        self.frames_emitted += len(block)
        if self._sink is not None:
            self._sink(block)


def default_engine_factory(media) -> ProcessingEngine:
    """Engine at the media's rate, rendering to the media's own playback output."""
    return ProcessingEngine(media.sample_rate, sink=getattr(media, "output", None))

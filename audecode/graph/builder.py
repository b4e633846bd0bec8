"""Audecode — decode graph builder.

Chain, in this exact order:

    media ─▶ downmix (L·0.5 + R·0.5) ─▶ buffer (×1.0)
          ─▶ notch[0] ─▶ notch[1] ─▶ … ─▶ notch[14]
          ─▶ output (×100) ─▶ destination

The builder never tears anything down that it did not create in the same
call.  Releasing the engine and restoring the media belong to the caller.
"""

import logging
from dataclasses import dataclass

from ..diagnostics import DisconnectError, GraphBuildError
from ..profiles import BUFFER_GAIN, FILTER_SPECS, OUTPUT_GAIN, FilterSpec
from .engine import ProcessingEngine
from .nodes import DownmixNode, GainNode, MediaSourceNode, Node, NotchNode

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A live, fully connected decode chain bound to one media source."""

    engine:   ProcessingEngine
    media:    object
    source:   MediaSourceNode
    downmix:  DownmixNode
    buffer:   GainNode
    notches:  tuple[NotchNode, ...]
    output:   GainNode

    @property
    def stage_params(self) -> tuple[tuple[float, float, float], ...]:
        return tuple(n.params for n in self.notches)

    def teardown_order(self) -> list[tuple[str, Node]]:
        """Stages from the output back to the media tap."""
        return [
            ("output", self.output),
            *((f"notch[{i}]", n) for i, n in enumerate(self.notches)),
            ("buffer", self.buffer),
            ("downmix", self.downmix),
            ("source", self.source),
        ]

    def disconnect_all(self) -> list[DisconnectError]:
        """Disconnect every stage; a failing stage does not stop the rest.

        Returns one :class:`DisconnectError` per stage that failed.
        """
        warnings = []
        for name, node in self.teardown_order():
            try:
                node.disconnect()
            except Exception as e:
                err = DisconnectError(name, e)
                logger.warning("error disconnecting %s", err.message)
                warnings.append(err)
        return warnings


def build_session(
    engine: ProcessingEngine,
    media,
    filters: tuple[FilterSpec, ...] = FILTER_SPECS,
    output_gain: float = OUTPUT_GAIN,
) -> Session:
    """Wire the decode chain for *media* on *engine*.

    Either a fully connected :class:`Session` comes back, or GraphBuildError
    is raised with every node created here already disconnected and the
    media's capture released.
    """
    created: list[Node] = []
    source = None

    def track(node):
        created.append(node)
        return node

    try:
        source  = track(engine.create_media_source(media))
        downmix = track(engine.create_downmix())
        source.connect(downmix)

        buffer = track(engine.create_gain(BUFFER_GAIN, label="buffer"))
        downmix.connect(buffer)

        notches = []
        current: Node = buffer
        for i, spec in enumerate(filters):
            notch = track(engine.create_notch(spec, label=f"notch[{i}]"))
            current.connect(notch)
            current = notch
            notches.append(notch)
            logger.debug("notch %d: %gHz Q=%g gain=%gdB",
                         i + 1, spec.frequency_hz, spec.q_factor, spec.gain_db)
        if not notches:
            logger.warning("no notch filters configured")

        output = track(engine.create_gain(output_gain, label="output"))
        current.connect(output)
        output.connect(engine.destination)
    except Exception as e:
        for node in reversed(created):
            try:
                node.disconnect()
            except Exception as de:
                logger.warning("error disconnecting %s after failed build: %s", node.label, de)
        if source is not None:
            media.release()
        raise GraphBuildError(f"decode chain construction failed: {e}") from e

    logger.debug("decode chain connected: %d notch stages, output ×%g", len(notches), output_gain)
    return Session(
        engine=engine,
        media=media,
        source=source,
        downmix=downmix,
        buffer=buffer,
        notches=tuple(notches),
        output=output,
    )

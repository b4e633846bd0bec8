"""Audecode — session lifecycle controller.

Decides, once per polling tick, whether the decode chain should be attached
to the player's current media, and owns the only processing engine.

Tick rules (evaluated in order, first match wins)
=================================================
  0. location changed   → teardown, forget last identity, stop this tick
  1. identity changed   → teardown, remember identity, stop this tick
  2. enabled ∧ eligible ∧ playing ∧ no session      → apply
  3. session ∧ (¬enabled ∨ ¬eligible ∨ ¬playing)    → teardown
  4. otherwise nothing

Teardown is split in two: stages are disconnected immediately, then the
engine is closed in a background task.  Until that task settles the
controller is DETACHING; an apply requested meanwhile waits for it, so two
live engines never coexist.  The media is handed back (seek to where it was
at teardown start, resume if it was playing) only after the close settles.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .diagnostics import EngineUnavailable, GraphBuildError, TeardownReport
from .graph import Session, build_session, default_engine_factory
from .media import Player, is_audecode_identity
from .prefs import MemoryPreferences
from .profiles import (
    FILTER_SPECS, OUTPUT_GAIN,
    POLL_INTERVAL_S, RESTART_DELAY_S,
    PREF_ENABLED_KEY, PREF_ENABLED_DEFAULT,
)
from .timer import PeriodicTimer

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    IDLE      = "idle"
    ACTIVE    = "active"
    DETACHING = "detaching"   # reported as idle outside the controller


class TickOutcome(str, Enum):
    NAVIGATED     = "navigated"
    TRACK_CHANGED = "track_changed"
    APPLIED       = "applied"
    APPLY_FAILED  = "apply_failed"
    DETACHED      = "detached"
    NONE          = "none"


class SessionController:
    """Attach/detach driver for one player.

    Args:
        player:          Supplies identity, media and (optionally) location.
        is_eligible:     Predicate over the identity string.
        prefs:           Key-value store holding the enabled flag.
        engine_factory:  ``factory(media) -> ProcessingEngine``; may raise
                         EngineUnavailable.
        filters:         Notch table, applied in index order.
        poll_interval:   Seconds between ticks.
        restart_delay:   Seconds between teardown and re-evaluation on restart.
    """

    def __init__(
        self,
        player: Player,
        *,
        is_eligible: Callable[[str], bool] = is_audecode_identity,
        prefs=None,
        engine_factory=default_engine_factory,
        filters=FILTER_SPECS,
        output_gain: float = OUTPUT_GAIN,
        poll_interval: float = POLL_INTERVAL_S,
        restart_delay: float = RESTART_DELAY_S,
    ):
        self.player         = player
        self.is_eligible    = is_eligible
        self.prefs          = prefs if prefs is not None else MemoryPreferences()
        self.filters        = tuple(filters)
        self.output_gain    = output_gain
        self.restart_delay  = restart_delay
        self.enabled        = bool(self.prefs.get(PREF_ENABLED_KEY, PREF_ENABLED_DEFAULT))

        self._engine_factory = engine_factory
        self._session: Optional[Session] = None
        self._release: Optional[asyncio.Task] = None
        self._apply_lock     = asyncio.Lock()
        self._timer          = PeriodicTimer(poll_interval, self._safe_tick)
        self._state_tasks: set[asyncio.Task] = set()

        self._last_identity: Optional[str] = None
        self._last_location: Optional[str] = None

        self._commands = {
            "getStatus":        self._cmd_status,
            "checkEligibility": self._cmd_eligibility,
            "enable":           self.enable,
            "disable":          self.disable,
            "toggle":           self.toggle,
            "restart":          self.restart,
        }

    # ── state ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ControllerState:
        if self._session is not None:
            return ControllerState.ACTIVE
        if self._release is not None and not self._release.done():
            return ControllerState.DETACHING
        return ControllerState.IDLE

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def session_active(self) -> bool:
        return self._session is not None

    def status(self) -> dict:
        return {
            "enabled":       self.enabled,
            "sessionActive": self.session_active,
            "hasSource":     self.player.media() is not None,
        }

    # ── polling ───────────────────────────────────────────────────────────────

    @property
    def monitoring(self) -> bool:
        return self._timer.running

    def start(self) -> None:
        """Begin polling (only while enabled)."""
        if self.enabled:
            self._timer.start()
            logger.info("player monitoring started")

    def stop(self) -> None:
        self._timer.cancel()
        logger.info("player monitoring stopped")

    async def close(self) -> None:
        """Stop polling, detach, and wait for the engine to be released."""
        self.stop()
        await self.teardown()
        await self.settle()

    async def _safe_tick(self) -> Optional[TickOutcome]:
        try:
            return await self.tick()
        except Exception:
            logger.exception("polling tick failed; continuing")
            return None

    async def tick(self) -> TickOutcome:
        location = self.player.location()
        if location is not None and location != self._last_location:
            first = self._last_location is None
            self._last_location = location
            if not first:
                logger.info("navigation detected: %s", location)
                await self.teardown()
                self._last_identity = ""
                return TickOutcome.NAVIGATED

        identity = self.player.identity()
        if identity != self._last_identity:
            logger.info("track changed: %r → %r", self._last_identity, identity)
            self._last_identity = identity
            await self.teardown()
            return TickOutcome.TRACK_CHANGED

        media    = self.player.media()
        playing  = media is not None and not media.paused
        eligible = self.is_eligible(identity)

        if self.enabled and eligible and playing and self._session is None:
            applied = await self.apply()
            return TickOutcome.APPLIED if applied else TickOutcome.APPLY_FAILED

        if self._session is not None and not (self.enabled and eligible and playing):
            if not self.enabled:
                logger.info("decoder disabled - removing decoder")
            elif not eligible:
                logger.info("non-audecode track - removing decoder")
            else:
                logger.info("media paused - removing decoder")
            await self.teardown()
            return TickOutcome.DETACHED

        return TickOutcome.NONE

    # ── attach ────────────────────────────────────────────────────────────────

    async def apply(self) -> bool:
        """Build and attach a session.  Returns True if one is now attached by this call."""
        async with self._apply_lock:
            if self._release is not None and not self._release.done():
                logger.debug("apply deferred until engine release settles")
                await asyncio.shield(self._release)

            if self._session is not None or not self.enabled:
                return False
            identity = self.player.identity()
            if not self.is_eligible(identity):
                logger.info("%r is not an audecode track - decoder not applied", identity)
                return False
            media = self.player.media()
            if media is None:
                logger.error("no media source found")
                return False

            try:
                engine = self._engine_factory(media)
            except EngineUnavailable:
                logger.exception("processing engine unavailable")
                return False

            try:
                session = build_session(engine, media, self.filters, self.output_gain)
            except GraphBuildError as e:
                logger.error("error applying decoder: %s", e)
                try:
                    await engine.close()
                except Exception as ce:
                    logger.warning("error releasing engine after failed build: %s", ce)
                return False

            self._session = session
            media.add_listener(self._on_play_state)
            if media.paused:
                await self._sync_engine(session, paused=True)
            logger.info("decoder applied: %d notch stages, output ×%g",
                        len(session.notches), self.output_gain)
            return True

    def _on_play_state(self, paused: bool) -> None:
        session = self._session
        if session is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("play/pause change outside the event loop; engine state not synced")
            return
        task = loop.create_task(self._sync_engine(session, paused))
        self._state_tasks.add(task)
        task.add_done_callback(self._state_tasks.discard)

    async def _sync_engine(self, session: Session, paused: bool) -> None:
        engine = session.engine
        try:
            if paused and engine.running:
                await engine.suspend()
                logger.info("engine suspended")
            elif not paused and not engine.running and not engine.closed:
                await engine.resume()
                logger.info("engine resumed")
        except Exception as e:
            logger.warning("error %s engine: %s", "suspending" if paused else "resuming", e)

    # ── detach ────────────────────────────────────────────────────────────────

    async def teardown(self) -> TeardownReport:
        """Disconnect the session now and release its engine in the background.

        Safe to call at any time; with no session it returns at once.  The
        returned report is completed (``released``, ``restored``) once the
        release settles; :meth:`settle` waits for that.
        """
        session = self._session
        if session is None:
            return TeardownReport()

        logger.info("removing decoder")
        self._session = None
        report = TeardownReport(performed=True)

        media       = session.media
        position    = None
        was_playing = False
        try:
            position    = media.position
            was_playing = not media.paused
            media.remove_listener(self._on_play_state)
        except Exception as e:
            logger.warning("error detaching from media: %s", e)

        report.warnings = session.disconnect_all()

        previous      = self._release
        self._release = asyncio.get_running_loop().create_task(
            self._release_engine(session, previous, position, was_playing, report)
        )
        return report

    async def _release_engine(self, session, previous, position, was_playing, report) -> None:
        try:
            if previous is not None and not previous.done():
                await asyncio.wait({previous})
            await session.engine.close()
            report.released = True
            logger.info("processing engine released")
        except asyncio.CancelledError:
            logger.warning("processing engine release cancelled")
            raise
        except Exception as e:
            logger.error("error releasing processing engine: %s", e)
        finally:
            self._restore_media(session.media, position, was_playing, report)

    def _restore_media(self, media, position, was_playing, report) -> None:
        try:
            media.release()
            if position is not None:
                media.seek(position)
            if was_playing:
                media.play()
            report.restored = True
            logger.info("media playback restored")
        except Exception as e:
            logger.warning("error restoring media: %s", e)

    async def settle(self) -> None:
        """Wait until any pending engine release has finished."""
        while self._release is not None and not self._release.done():
            await asyncio.shield(self._release)

    # ── command surface ───────────────────────────────────────────────────────

    async def handle(self, action: str) -> dict:
        """Dispatch one command from the messaging layer."""
        logger.debug("received command: %s", action)
        command = self._commands.get(action)
        if command is None:
            return {"error": "Unknown action"}
        try:
            return await command()
        except Exception as e:
            logger.exception("command %s failed", action)
            return {"success": False, "error": str(e)}

    async def _cmd_status(self) -> dict:
        return self.status()

    async def _cmd_eligibility(self) -> dict:
        return {"eligible": bool(self.is_eligible(self.player.identity()))}

    async def enable(self) -> dict:
        self.enabled = True
        self.prefs.set(PREF_ENABLED_KEY, True)
        self.start()
        await self._safe_tick()
        return {"success": True, "enabled": True}

    async def disable(self) -> dict:
        self.enabled = False
        self.prefs.set(PREF_ENABLED_KEY, False)
        self.stop()
        await self.teardown()
        return {"success": True, "enabled": False}

    async def toggle(self) -> dict:
        return await (self.disable() if self.enabled else self.enable())

    async def restart(self) -> dict:
        if self.enabled:
            await self.teardown()
            await asyncio.sleep(self.restart_delay)
            await self._safe_tick()
        return {"success": True}

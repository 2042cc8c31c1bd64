"""Arm/disarm state machine for the acquisition front end."""

from __future__ import annotations

import logging

from .backends.base import AcquisitionMode
from .hardware import HardwareAbort, HardwareLink
from .state import InstrumentState

LOGGER = logging.getLogger(__name__)


class AcquisitionController:
    """Own the ``Disarmed``/``Armed`` transitions.

    All methods expect the session lock to be held by the caller. Any command
    that changes configuration while armed must call :meth:`rearm_if_armed`
    after applying the change so the hardware is re-armed with, and the
    snapshot reflects, the new configuration.
    """

    def __init__(self, state: InstrumentState, hardware: HardwareLink) -> None:
        self._state = state
        self._hw = hardware

    @property
    def armed(self) -> bool:
        return self._state.acquisition.armed

    def start(self, force: bool = False) -> None:
        """Snapshot the live configuration and arm the hardware."""

        state = self._state
        acquisition = state.acquisition
        snapshot = state.live_snapshot()
        state.trigger.sample_index = snapshot.trigger_sample_index

        try:
            self._hw.call("set_acquisition_mode", AcquisitionMode.SINGLE)
            self._hw.call("configure", True, True)
            if force:
                self._hw.call("force_trigger")
        except HardwareAbort:
            acquisition.armed = False
            raise

        acquisition.snapshot = snapshot
        acquisition.armed = True
        LOGGER.debug(
            "Armed: channels=%s depth=%s interval=%sfs force=%s",
            snapshot.enabled_channels(),
            snapshot.mem_depth,
            snapshot.sample_interval_fs,
            force,
        )

    def stop(self) -> None:
        """Idle the hardware. Valid in either state."""

        try:
            self._hw.call("configure", True, False)
        finally:
            self._state.acquisition.armed = False

    def request_start(self, single: bool) -> bool:
        """Handle ``START``/``SINGLE``; returns ``True`` if the hardware was armed."""

        if self.armed:
            LOGGER.info("Ignoring START command because trigger is already armed")
            return False
        if not self._state.any_channel_enabled():
            LOGGER.info("Ignoring START command because no channels are active")
            return False
        self.start()
        self._state.acquisition.one_shot = single
        return True

    def rearm_if_armed(self) -> None:
        if self.armed:
            self.start()

    def complete_capture(self) -> None:
        """Called once a capture has been read out: re-arm unless one-shot."""

        if self._state.acquisition.one_shot:
            self._state.acquisition.armed = False
        else:
            self.start()

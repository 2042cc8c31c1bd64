"""Companion data-plane task that drains completed captures.

One :class:`WaveformPump` runs per connected client. It only reads the frozen
arm-time snapshot, never the live configuration, so a capture is always
interpreted with the settings that were active when it was armed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .hardware import HardwareAbort
from .session import InstrumentSession
from .state import ArmSnapshot

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureRecord:
    sequence: int
    snapshot: ArmSnapshot
    trigger_sample_index: int
    trigger_position_error_s: float
    waveforms: Dict[int, List[float]] = field(default_factory=dict)


CaptureSink = Callable[[CaptureRecord], None]


def log_capture(record: CaptureRecord) -> None:
    LOGGER.info(
        "Capture #%s: channels=%s depth=%s interval=%sfs",
        record.sequence,
        sorted(record.waveforms),
        record.snapshot.mem_depth,
        record.snapshot.sample_interval_fs,
    )


class WaveformPump:
    """Poll the backend for completed captures while the instrument is armed."""

    def __init__(
        self,
        session: InstrumentSession,
        sink: Optional[CaptureSink] = None,
        poll_interval: float = 0.01,
    ) -> None:
        self._session = session
        self._sink = sink or log_capture
        self._poll_interval = max(0.0, poll_interval)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Waveform pump already started")
        self._thread = threading.Thread(target=self._run, name="WaveformPump", daemon=True)
        self._thread.start()

    def request_stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the task to exit; returns ``False`` if it is still running."""

        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        self.request_stop()
        stopped = self.join(timeout)
        if not stopped:
            LOGGER.error("Waveform pump did not stop within %ss", timeout)
        return stopped

    def _run(self) -> None:
        LOGGER.debug("Waveform pump started")
        while not self._stop.is_set():
            try:
                record = self.poll_once()
            except Exception:  # pragma: no cover
                LOGGER.exception("Unexpected failure in waveform pump")
                record = None
            if record is not None:
                self._sink(record)
            self._stop.wait(self._poll_interval)
        LOGGER.debug("Waveform pump stopped")

    def poll_once(self) -> Optional[CaptureRecord]:
        """Check for a completed capture and read it out; re-arms or disarms afterwards."""

        session = self._session
        state = session.state
        with session.exclusive():
            acquisition = state.acquisition
            if not acquisition.armed or acquisition.snapshot is None:
                return None
            try:
                done = session.hardware.call("acquisition_done")
                if not done.ok or not done.value:
                    return None

                snapshot = acquisition.snapshot
                waveforms: Dict[int, List[float]] = {}
                for channel in snapshot.enabled_channels():
                    result = session.hardware.call("read_samples", channel, snapshot.mem_depth)
                    if result.ok:
                        waveforms[channel] = result.value
                acquisition.buffers_dirty = False
                acquisition.captures += 1
                record = CaptureRecord(
                    sequence=acquisition.captures,
                    snapshot=snapshot,
                    trigger_sample_index=snapshot.trigger_sample_index,
                    trigger_position_error_s=snapshot.trigger_position_error_s,
                    waveforms=waveforms,
                )
            except HardwareAbort as exc:
                LOGGER.warning("Capture readout aborted: %s", exc)
                return None
            try:
                session.lifecycle.complete_capture()
            except HardwareAbort as exc:
                LOGGER.warning("Re-arm after capture #%s aborted: %s", record.sequence, exc)
        return record

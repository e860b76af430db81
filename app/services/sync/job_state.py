import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from app.models.shared.enums import SyncPhase, SyncRunState
from app.schemas.sync.sync_schema import SyncStatusResponse
from app.utils.date_utils import utcnow

# phase -> (start %, end %); progress inside a phase is interpolated on done/total
PHASE_PROGRESS: Dict[SyncPhase, Tuple[int, int]] = {
    SyncPhase.IDLE: (0, 0),
    SyncPhase.LISTING: (5, 5),
    SyncPhase.DETAILS: (5, 60),
    SyncPhase.AGGREGATING: (62, 62),
    SyncPhase.WAREHOUSE_STOCK: (65, 95),
    SyncPhase.PO_OUTSTANDING: (68, 93),
    SyncPhase.COMMIT: (97, 97),
    SyncPhase.DONE: (100, 100),
}


def phase_progress(phase: SyncPhase, done: int = 0, total: int = 0) -> int:
    start, end = PHASE_PROGRESS[phase]
    if end == start or total <= 0:
        return start
    return start + round((end - start) * min(done, total) / total)


@dataclass
class _Snapshot:
    state: SyncRunState = SyncRunState.IDLE
    job_name: Optional[str] = None
    phase: SyncPhase = SyncPhase.IDLE
    done: int = 0
    total: int = 0
    attempt: int = 0
    message: str = "Idle"
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    item_count: Optional[int] = None
    invoice_count: Optional[int] = None
    started_monotonic: Optional[float] = None


@dataclass
class JobState:
    """Single-flight flag plus live progress for one coordinator.

    The flag lives here rather than in module globals so every coordinator
    (and every test) owns its own. All mutations go through ``_lock``.
    """
    stale_after_seconds: float
    clock: Callable[[], float] = time.monotonic
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _held: bool = False
    _generation: int = 0
    _snap: _Snapshot = field(default_factory=_Snapshot)

    @property
    def is_held(self) -> bool:
        with self._lock:
            return self._held

    def held_for(self) -> Optional[float]:
        with self._lock:
            if not self._held or self._snap.started_monotonic is None:
                return None
            return self.clock() - self._snap.started_monotonic

    def try_acquire(self, job_name: str, break_stale: bool = False) -> Optional[int]:
        """Take the flag and return its token, or None when busy.

        With ``break_stale`` a flag held past the stale threshold is taken
        over; the previous holder's token can no longer release it.
        """
        with self._lock:
            if self._held:
                started = self._snap.started_monotonic
                age = 0.0 if started is None else self.clock() - started
                if not (break_stale and age > self.stale_after_seconds):
                    return None
            self._held = True
            self._generation += 1
            self._snap = _Snapshot(
                state=SyncRunState.RUNNING,
                job_name=job_name,
                attempt=1,
                message="Starting...",
                started_at=utcnow(),
                started_monotonic=self.clock(),
            )
            return self._generation

    def owns(self, token: int) -> bool:
        with self._lock:
            return self._held and token == self._generation

    def release(self, token: int):
        with self._lock:
            if token == self._generation:
                self._held = False

    def update(self, phase: Optional[SyncPhase] = None, done: Optional[int] = None, total: Optional[int] = None,
               message: Optional[str] = None):
        with self._lock:
            if phase is not None:
                self._snap.phase = phase
                self._snap.done = 0
                self._snap.total = 0
            if done is not None:
                self._snap.done = done
            if total is not None:
                self._snap.total = total
            if message is not None:
                self._snap.message = message

    def mark_retrying(self, attempt: int, error: str):
        with self._lock:
            self._snap.state = SyncRunState.RETRYING
            self._snap.attempt = attempt
            self._snap.error = error
            self._snap.message = f"Attempt {attempt - 1} failed, retrying: {error}"

    def mark_attempt(self, attempt: int):
        with self._lock:
            self._snap.state = SyncRunState.RUNNING
            self._snap.attempt = attempt
            self._snap.phase = SyncPhase.IDLE

    def finish(self, success: bool, message: str, error: Optional[str] = None,
               item_count: Optional[int] = None, invoice_count: Optional[int] = None):
        with self._lock:
            self._snap.state = SyncRunState.DONE if success else SyncRunState.ERROR
            self._snap.phase = SyncPhase.DONE if success else self._snap.phase
            self._snap.message = message
            self._snap.error = error
            self._snap.completed_at = utcnow()
            if item_count is not None:
                self._snap.item_count = item_count
            if invoice_count is not None:
                self._snap.invoice_count = invoice_count

    def snapshot(self) -> SyncStatusResponse:
        with self._lock:
            s = self._snap
            elapsed = None
            if s.started_monotonic is not None:
                end = None if self._held else s.completed_at
                if end is None:
                    elapsed = int(self.clock() - s.started_monotonic)
                elif s.started_at is not None:
                    elapsed = int((end - s.started_at).total_seconds())
            return SyncStatusResponse(
                status=s.state,
                job_name=s.job_name,
                phase=s.phase,
                done=s.done,
                total=s.total,
                progress=phase_progress(s.phase, s.done, s.total),
                attempt=s.attempt,
                message=s.message,
                started_at=s.started_at,
                completed_at=s.completed_at,
                elapsed_sec=elapsed,
                error=s.error,
                item_count=s.item_count,
                invoice_count=s.invoice_count,
            )

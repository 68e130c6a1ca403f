"""
Signal Debouncer - Gates noisy per-frame observations into confirmed signals.

Delayed-confirmation kinds must hold continuously for their confirmation
delay; cooldown-gated kinds fire at most once per cooldown window.
"""

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional

from .models import (
    MonitorConfiguration, ObjectRepeatPolicy, SignalKey, SignalKind, SignalState
)


logger = logging.getLogger(__name__)


class SignalDebouncer:
    """
    Keeps one SignalState per SignalKey and decides when an observation
    becomes a confirmed signal.

    All times are in milliseconds on the caller's clock.
    """

    def __init__(self, config: Optional[MonitorConfiguration] = None):
        """
        Initialize the debouncer.

        Args:
            config: Monitor configuration supplying delays, cooldowns and
                the object re-arm policy
        """
        self.config = config or MonitorConfiguration()
        self.states: Dict[SignalKey, SignalState] = {}
        self.lock = threading.Lock()

        # Statistics
        self.observation_count = 0
        self.confirmation_count = 0

    def observe(
        self,
        key: SignalKey,
        present_now: bool,
        now_ms: float,
        cooldown_ms: Optional[int] = None,
        confirm_delay_ms: Optional[int] = None
    ) -> bool:
        """
        Feed one observation of a signal.

        Args:
            key: Signal being observed
            present_now: Whether the raw condition holds in this observation
            now_ms: Observation time in milliseconds
            cooldown_ms: Override of the configured cooldown (cooldown kinds)
            confirm_delay_ms: Override of the configured delay (delayed kinds)

        Returns:
            True if this observation confirms the signal
        """
        with self.lock:
            self.observation_count += 1
            state = self.states.setdefault(key, SignalState())

            if key.kind.is_delayed:
                if confirm_delay_ms is None:
                    confirm_delay_ms = self.config.get_confirm_delay(key.kind)
                confirmed = self._observe_delayed(state, present_now, now_ms, confirm_delay_ms)
            else:
                if cooldown_ms is None:
                    cooldown_ms = self.config.get_cooldown(key.kind)
                confirmed = self._observe_cooldown(key, state, present_now, now_ms, cooldown_ms)

            if confirmed:
                self.confirmation_count += 1
                logger.debug(f"Confirmed {key} at {now_ms:.0f}ms")
            return confirmed

    def _observe_delayed(
        self,
        state: SignalState,
        present_now: bool,
        now_ms: float,
        confirm_delay_ms: int
    ) -> bool:
        if not present_now:
            state.pending = False
            state.pending_since = None
            state.latched = False
            return False

        if state.latched:
            return False

        if not state.pending:
            state.pending = True
            state.pending_since = now_ms

        if now_ms - state.pending_since >= confirm_delay_ms:
            state.pending = False
            state.pending_since = None
            state.last_confirmed = now_ms
            if not self.config.repeat_while_present:
                state.latched = True
            return True

        return False

    def _observe_cooldown(
        self,
        key: SignalKey,
        state: SignalState,
        present_now: bool,
        now_ms: float,
        cooldown_ms: int
    ) -> bool:
        is_object = key.kind is SignalKind.PROHIBITED_OBJECT
        was_detected = state.detected

        if present_now and is_object:
            state.detected = True
            state.last_seen = now_ms

        if not present_now:
            return False

        cooled_down = state.last_confirmed is None or now_ms - state.last_confirmed > cooldown_ms
        if not cooled_down:
            return False

        if (
            is_object
            and self.config.object_repeat_policy is ObjectRepeatPolicy.REQUIRE_ABSENCE
            and was_detected
            and state.last_confirmed is not None
        ):
            return False

        state.last_confirmed = now_ms
        return True

    def expire_stale(self, now_ms: float) -> List[SignalKey]:
        """
        Clear the presence flag of objects not seen for longer than the
        presence timeout.

        Args:
            now_ms: Current time in milliseconds

        Returns:
            Keys whose presence flag was cleared
        """
        timeout = self.config.object_presence_timeout_ms
        expired = []
        with self.lock:
            for key, state in self.states.items():
                if key.kind is not SignalKind.PROHIBITED_OBJECT or not state.detected:
                    continue
                if state.last_seen is not None and now_ms - state.last_seen > timeout:
                    state.detected = False
                    expired.append(key)
        if expired:
            logger.debug(f"Objects no longer present: {', '.join(str(k) for k in expired)}")
        return expired

    def cancel_pending(self) -> int:
        """Drop every pending confirmation timer. Returns how many were dropped."""
        cancelled = 0
        with self.lock:
            for state in self.states.values():
                if state.pending:
                    state.pending = False
                    state.pending_since = None
                    cancelled += 1
        return cancelled

    def reset(self) -> None:
        """Forget all signal state."""
        with self.lock:
            self.states.clear()
            self.observation_count = 0
            self.confirmation_count = 0

    def get_state(self, key: SignalKey) -> SignalState:
        """Return a copy of the state for ``key`` (a fresh state if unseen)."""
        with self.lock:
            state = self.states.get(key)
            return replace(state) if state is not None else SignalState()

    def is_pending(self, key: SignalKey) -> bool:
        return self.get_state(key).pending

    def get_statistics(self) -> Dict[str, int]:
        """Get debouncer statistics."""
        with self.lock:
            return {
                'tracked_signals': len(self.states),
                'pending_signals': sum(1 for s in self.states.values() if s.pending),
                'observations': self.observation_count,
                'confirmations': self.confirmation_count,
            }

"""
auth/throttle.py -- Per-identifier failed-login lockout.

Policy (thresholds from Settings):
  - First offence: LOGIN_FAIL_THRESHOLD (5) consecutive failures lock the
    identifier for LOGIN_LOCK_HOURS (1h).
  - Once an identifier has been locked, the threshold drops to
    LOGIN_FAIL_THRESHOLD_AFTER_LOCK (3) and locks last
    LOGIN_LOCK_HOURS_AFTER_LOCK (2h). post_first_ban is never cleared.
  - A successful login resets the counter and clears the lock.

This complements the per-IP slowapi limit on the login route: slowapi stops
one client hammering many accounts, the throttle stops many clients
hammering one account.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from auth.models import LoginState
from auth.store import UserStore
from core.config import Settings
from core.errors import LoginLocked

logger = logging.getLogger("lotdesk.auth")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class LoginThrottle:
    def __init__(
        self,
        store: UserStore,
        settings: Settings,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock

    def check(self, number: str) -> LoginState:
        """Return the current state for number; raise LoginLocked while a lock is active."""
        state = self.store.get_login_state(number)
        locked_until = parse_iso(state.locked_until)
        now = self.clock()
        if locked_until is not None and locked_until > now:
            minutes = math.ceil((locked_until - now).total_seconds() / 60)
            raise LoginLocked(
                f"Account is temporarily blocked. Try again in {minutes} minute(s).",
                blocked_until=locked_until.isoformat(),
            )
        return state

    def record_failure(self, state: LoginState, identity_id: Optional[int]) -> int:
        """Count one failure. Returns attempts left, or raises LoginLocked at the threshold."""
        if state.post_first_ban:
            threshold = self.settings.login_fail_threshold_after_lock
            lock_hours = self.settings.login_lock_hours_after_lock
        else:
            threshold = self.settings.login_fail_threshold
            lock_hours = self.settings.login_lock_hours
        fails = state.fail_count + 1

        if fails >= threshold:
            locked_until = (self.clock() + timedelta(hours=lock_hours)).isoformat()
            self.store.save_login_state(
                LoginState(number=state.number, fail_count=0, post_first_ban=True, locked_until=locked_until)
            )
            reason = f"Failed password threshold reached ({threshold})"
            self.store.log_lockout(state.number, identity_id, lock_hours, locked_until, reason)
            logger.warning("Login locked for %s until %s: %s", state.number, locked_until, reason)
            raise LoginLocked(
                f"Too many wrong attempts. Account blocked for {lock_hours} hour(s).",
                blocked_until=locked_until,
            )

        self.store.save_login_state(
            LoginState(number=state.number, fail_count=fails, post_first_ban=state.post_first_ban)
        )
        return threshold - fails

    def record_success(self, state: LoginState) -> None:
        if state.fail_count == 0 and state.locked_until is None:
            return
        self.store.save_login_state(LoginState(number=state.number, post_first_ban=state.post_first_ban))

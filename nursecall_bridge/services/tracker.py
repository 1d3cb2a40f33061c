"""Per-connection call state used to auto-complete unacknowledged calls."""
from __future__ import annotations

from typing import Optional

STANDBY_AUTO_COMPLETE = 5


class CallStateTracker:
    """Track the last active call and count standby pulses since it started.

    The panel repeats its standby code while idle. Five pulses after a call
    without an explicit reset mean the call was cleared and the reset was
    lost.
    """

    def __init__(self) -> None:
        self.last_active_code: Optional[str] = None
        self.awaiting_reset = False
        self.standby_count = 0

    def reset(self) -> None:
        self.last_active_code = None
        self.awaiting_reset = False
        self.standby_count = 0

    def on_call_created(self, code: str) -> None:
        self.last_active_code = code
        self.awaiting_reset = True
        self.standby_count = 0

    def on_reset(self) -> None:
        self.awaiting_reset = False

    def on_standby(self) -> Optional[str]:
        """Count a pulse; return the code to auto-complete once the limit is hit."""
        if not self.awaiting_reset:
            return None
        self.standby_count += 1
        if self.standby_count < STANDBY_AUTO_COMPLETE:
            return None
        self.awaiting_reset = False
        return self.last_active_code

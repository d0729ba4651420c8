"""
WizardDAO - Cooldown Guard

Per-holder timer gating mint submission, fusion submission and claims.
Resolution paths (mint and fusion) start the timer.
"""

from dataclasses import dataclass

from dividend_ledger import HolderAccount
from wizard_exceptions import CooldownActiveError


@dataclass
class CooldownGuard:
    """Checks and starts holder cooldowns."""

    def is_ready(self, account: HolderAccount, now: int) -> bool:
        return now >= account.cooldown_until

    def remaining(self, account: HolderAccount, now: int) -> int:
        return max(0, account.cooldown_until - now)

    def require_ready(self, holder: str, account: HolderAccount, now: int, action: str) -> None:
        """Raise CooldownActiveError while the holder's cooldown is running."""
        if not self.is_ready(account, now):
            raise CooldownActiveError(holder, account.cooldown_until, now, action=action)

    def start(self, account: HolderAccount, now: int, period: int) -> int:
        """Start a new cooldown; returns the expiry time."""
        account.cooldown_until = now + period
        return account.cooldown_until

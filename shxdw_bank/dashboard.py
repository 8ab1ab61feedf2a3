"""
Live Dashboard

Read-only monitor of the largest balances. A snapshot is taken through the
ledger engine's normal reads, so it always shows committed state. The refresh
loop is cancelled cooperatively through a ``threading.Event`` and stops at
the next iteration boundary.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from .ledger import LedgerEngine
from .logging_config import get_logger
from .money import format_amount

UNKNOWN_CLIENT = "?"


@dataclass
class DashboardRow:
    client_name: str
    account_number: str
    balance: Decimal
    currency: str

    def to_dict(self) -> dict:
        return {
            "client_name": self.client_name,
            "account_number": self.account_number,
            "balance": str(self.balance),
            "currency": self.currency,
        }


@dataclass
class DashboardSnapshot:
    taken_at: datetime
    rows: List[DashboardRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "taken_at": self.taken_at.isoformat(),
            "rows": [row.to_dict() for row in self.rows],
        }


def build_snapshot(engine: LedgerEngine, top_n: int) -> DashboardSnapshot:
    """Top ``top_n`` accounts by balance, largest first"""
    views = engine.list_account_views()
    views.sort(key=lambda v: (-v.account.balance, v.account.number))
    rows = [
        DashboardRow(
            client_name=view.client_name or UNKNOWN_CLIENT,
            account_number=view.account.number,
            balance=view.account.balance,
            currency=view.account.currency
        )
        for view in views[:max(top_n, 0)]
    ]
    return DashboardSnapshot(taken_at=datetime.now(timezone.utc), rows=rows)


def render_text(snapshot: DashboardSnapshot) -> str:
    """Plain-text table of a snapshot"""
    lines = [f"{'Client':<24} {'Account':<16} {'Balance':>20}"]
    for row in snapshot.rows:
        lines.append(
            f"{row.client_name[:24]:<24} {row.account_number:<16} "
            f"{format_amount(row.balance, row.currency):>20}"
        )
    lines.append(f"Last sync: {snapshot.taken_at.astimezone():%H:%M:%S}")
    return "\n".join(lines)


class LiveDashboard:
    """
    Fixed-interval refresh loop over ledger snapshots
    """

    def __init__(self, engine: LedgerEngine, top_n: int = 8, interval: float = 0.5):
        self.engine = engine
        self.top_n = top_n
        self.interval = interval
        self.logger = get_logger("shxdw.dashboard")

    def snapshot(self) -> DashboardSnapshot:
        return build_snapshot(self.engine, self.top_n)

    def run(
        self,
        render: Callable[[DashboardSnapshot], None],
        stop_event: threading.Event,
        interval: Optional[float] = None,
        max_iterations: Optional[int] = None
    ) -> int:
        """
        Render a fresh snapshot every ``interval`` seconds until
        ``stop_event`` is set or ``max_iterations`` renders have happened.

        Returns:
            Number of snapshots rendered
        """
        interval = self.interval if interval is None else interval
        rendered = 0
        self.logger.debug(f"Dashboard started (top {self.top_n}, every {interval}s)")

        while not stop_event.is_set():
            render(self.snapshot())
            rendered += 1
            if max_iterations is not None and rendered >= max_iterations:
                break
            # Event.wait returns early as soon as the stop is requested
            if stop_event.wait(interval):
                break

        self.logger.debug(f"Dashboard stopped after {rendered} refreshes")
        return rendered

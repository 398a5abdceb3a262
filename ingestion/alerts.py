"""
Consecutive sync failure tracking and rate-limited alerting.

Per connection:
- A completed run resets the failure counter
- A failed run increments it and records the failure
- An alert fires once the counter reaches the threshold, then at most
  once per cooldown window until a run succeeds or it is acknowledged
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from core.config import Settings
from models.alert import SyncFailureAlert
from models.base import SyncMode, SyncStatus
from models.connection import AppfolioConnection
from models.sync_run import SyncRun
from models.user import User

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, recipients: List[str], subject: str, body: str) -> bool:
        ...


@dataclass(frozen=True)
class AlertPolicy:
    enabled: bool = True
    threshold: int = 3
    cooldown_minutes: int = 60
    recipients: Tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlertPolicy":
        return cls(
            enabled=settings.NOTIFICATIONS_ENABLED,
            threshold=settings.ALERT_FAILURE_THRESHOLD,
            cooldown_minutes=settings.ALERT_COOLDOWN_MINUTES,
            recipients=tuple(settings.alert_recipient_list),
        )


class SyncFailureAlertService:
    """Drives ``SyncFailureAlert`` rows from finished sync runs."""

    def __init__(
        self,
        db_session: AsyncSession,
        policy: AlertPolicy,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.db = db_session
        self.policy = policy
        self.notifier = notifier
        self.clock = clock

    async def _get_alert(self, connection_id: int) -> Optional[SyncFailureAlert]:
        result = await self.db.execute(
            select(SyncFailureAlert).where(SyncFailureAlert.connection_id == connection_id)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_alert(self, connection_id: int) -> SyncFailureAlert:
        alert = await self._get_alert(connection_id)
        if alert is None:
            alert = SyncFailureAlert(connection_id=connection_id, consecutive_failures=0, failure_details=[])
            self.db.add(alert)
        return alert

    async def handle_sync_completed(self, run: SyncRun) -> Optional[SyncFailureAlert]:
        """
        Update the failure counter for the run's connection and alert if due.

        Only ``failed`` runs count as failures. A ``completed`` run resets
        the counter even when it carried record-level errors.

        Returns:
            The connection's alert row, or None when nothing is tracked
        """
        if run.connection_id is None:
            return None

        status = SyncStatus(run.status)

        if status == SyncStatus.COMPLETED:
            alert = await self._get_alert(run.connection_id)
            if alert is not None and alert.consecutive_failures:
                logger.info(
                    f"Sync succeeded for connection {run.connection_id}; "
                    f"resetting {alert.consecutive_failures} consecutive failures"
                )
                alert.reset_failures()
                await self.db.commit()
            return alert

        if status != SyncStatus.FAILED:
            logger.warning(f"Sync run {run.id} is {status.value}; not evaluating alerts")
            return None

        now = self.clock()
        alert = await self._get_or_create_alert(run.connection_id)
        alert.record_failure(
            {
                "sync_run_id": run.id,
                "error_summary": run.error_summary,
                "errors_count": run.errors_count,
                "mode": SyncMode(run.mode).value if run.mode else None,
            },
            now=now
        )
        logger.warning(
            f"Sync failure {alert.consecutive_failures} in a row for connection {run.connection_id}"
        )

        if self._should_alert(alert, now):
            if await self._send_alert(alert, run):
                alert.mark_alert_sent(now)

        await self.db.commit()
        return alert

    def _should_alert(self, alert: SyncFailureAlert, now: datetime) -> bool:
        if not self.policy.enabled:
            logger.debug("Notifications disabled; not sending sync failure alert")
            return False
        if alert.consecutive_failures < self.policy.threshold:
            return False
        return alert.should_send_alert(self.policy.cooldown_minutes, now)

    async def _recipients(self) -> List[str]:
        if self.policy.recipients:
            return list(self.policy.recipients)
        result = await self.db.execute(select(User.email).where(User.is_active.is_(True)))
        return [email for email in result.scalars().all() if email]

    async def _send_alert(self, alert: SyncFailureAlert, run: SyncRun) -> bool:
        if self.notifier is None:
            logger.warning("No notifier configured; sync failure alert not delivered")
            return False

        recipients = await self._recipients()
        connection = await self.db.get(AppfolioConnection, alert.connection_id)
        name = connection.name if connection is not None else f"#{alert.connection_id}"

        subject = f"AppFolio sync failing for {name}: {alert.consecutive_failures} consecutive failures"
        body = "\n".join([
            f"The AppFolio sync for connection {name} has failed "
            f"{alert.consecutive_failures} times in a row.",
            "",
            f"Latest run: {run.id}",
            f"Error: {run.error_summary or 'unknown'}",
            "",
            "Further alerts are held back for "
            f"{self.policy.cooldown_minutes} minutes or until the alert is acknowledged.",
        ])

        sent = await self.notifier.send(recipients, subject, body)
        if sent:
            logger.info(f"Sync failure alert sent for connection {alert.connection_id}")
        return sent

    async def acknowledge_alert(
        self,
        alert: Union[SyncFailureAlert, int],
        user: str
    ) -> Optional[SyncFailureAlert]:
        """Record who acknowledged the alert. The failure counter is left as is."""
        if not isinstance(alert, SyncFailureAlert):
            alert = await self.db.get(SyncFailureAlert, alert)
            if alert is None:
                return None

        alert.acknowledge(user, now=self.clock())
        await self.db.commit()
        logger.info(f"Sync failure alert {alert.id} acknowledged by {user}")
        return alert

    async def get_alert_status(self, connection_id: int) -> Dict[str, Any]:
        alert = await self._get_alert(connection_id)
        if alert is None:
            return {
                "connection_id": connection_id,
                "consecutive_failures": 0,
                "is_alerting": False,
                "last_alert_sent_at": None,
                "acknowledged_at": None,
                "acknowledged_by": None,
                "failure_details": [],
            }

        return {
            "connection_id": connection_id,
            "consecutive_failures": alert.consecutive_failures,
            "is_alerting": alert.is_active(self.policy.threshold),
            "last_alert_sent_at": alert.last_alert_sent_at,
            "acknowledged_at": alert.acknowledged_at,
            "acknowledged_by": alert.acknowledged_by,
            "failure_details": alert.failure_details or [],
        }

    async def get_active_alerts(self) -> List[SyncFailureAlert]:
        """Unacknowledged alerts at or over the failure threshold."""
        result = await self.db.execute(
            select(SyncFailureAlert)
            .where(
                SyncFailureAlert.consecutive_failures >= self.policy.threshold,
                SyncFailureAlert.acknowledged_at.is_(None),
            )
            .order_by(SyncFailureAlert.consecutive_failures.desc())
        )
        return list(result.scalars().all())

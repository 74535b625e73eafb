"""
Subscription Lifecycle Scheduler

Background control loop that ages subscriptions against the clock:

    active -> grace_period        end_date passed, still inside the grace window
    active | grace_period -> expired   end_date older than the grace window

and warns tenant admins ahead of expiry. Every transition is guarded by a
status predicate, so running an iteration twice at the same instant changes
nothing the second time.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import SubscriptionStatus
from app.db.repositories.subscription_repository import SubscriptionRepository
from app.schemas.subscription import LifecycleRunResult
from app.services.notification_dispatcher import SubscriptionNotificationService
from app.utils.date import utcnow

logger = logging.getLogger(__name__)


class SubscriptionLifecycleScheduler:
    """Periodic subscription expiry, grace-period and warning pass"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        interval_seconds: Optional[float] = None,
        grace_period_days: Optional[int] = None,
        warning_days: Optional[Sequence[int]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if session_factory is None:
            from app.db.database import async_session_local
            session_factory = async_session_local

        self.session_factory = session_factory
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.SCHEDULER_INTERVAL_SECONDS
        )
        self.grace_period_days = (
            grace_period_days if grace_period_days is not None else settings.GRACE_PERIOD_DAYS
        )
        self.warning_days = list(warning_days or settings.EXPIRATION_WARNING_DAYS)
        self.clock = clock

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="subscription-lifecycle-scheduler")
        logger.info(f"Subscription scheduler started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Subscription scheduler stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in subscription scheduler iteration: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def run_once(self, now: Optional[datetime] = None) -> LifecycleRunResult:
        """One pass: expire, then start grace periods, then send warnings"""
        now = now or self.clock()
        result = LifecycleRunResult()

        async with self.session_factory() as session:
            subscriptions = SubscriptionRepository(session)
            notifier = SubscriptionNotificationService(session, grace_period_days=self.grace_period_days)

            await self._expire(subscriptions, notifier, now, result)
            await self._start_grace_periods(subscriptions, notifier, now, result)
            await self._send_warnings(subscriptions, notifier, now, result)

        if result.expired_count or result.grace_period_count or result.warnings_sent:
            logger.info(
                f"Subscription scheduler pass: {result.expired_count} expired, "
                f"{result.grace_period_count} entered grace, {result.warnings_sent} warning(s)"
            )
        return result

    async def _expire(
        self,
        subscriptions: SubscriptionRepository,
        notifier: SubscriptionNotificationService,
        now: datetime,
        result: LifecycleRunResult,
    ) -> None:
        cutoff = now - timedelta(days=self.grace_period_days)
        try:
            candidates = await subscriptions.list_past_grace(cutoff)
        except Exception as e:
            await subscriptions.session.rollback()
            result.messages.append(f"Failed to load expired subscriptions: {e}")
            logger.error(f"Error loading expired subscriptions: {e}")
            return

        for subscription, subscription_id, tenant_id in [(s, s.id, s.tenant_id) for s in candidates]:
            try:
                subscription.status = SubscriptionStatus.EXPIRED.value
                subscription.is_active = False
                subscription.updated_at = now
                await subscriptions.session.commit()
            except Exception as e:
                await subscriptions.session.rollback()
                result.messages.append(f"Failed to expire subscription {subscription_id}: {e}")
                logger.error(f"Error expiring subscription {subscription_id}: {e}")
                continue

            result.expired_count += 1
            result.messages.append(f"Subscription {subscription_id} for tenant {tenant_id} expired")
            logger.info(
                f"Subscription {subscription_id} for tenant {tenant_id} expired",
                extra={"tenant_id": tenant_id, "subscription_id": subscription_id},
            )
            await notifier.send_subscription_expired(subscription)

    async def _start_grace_periods(
        self,
        subscriptions: SubscriptionRepository,
        notifier: SubscriptionNotificationService,
        now: datetime,
        result: LifecycleRunResult,
    ) -> None:
        cutoff = now - timedelta(days=self.grace_period_days)
        try:
            candidates = await subscriptions.list_entering_grace(cutoff, now)
        except Exception as e:
            await subscriptions.session.rollback()
            result.messages.append(f"Failed to load lapsed subscriptions: {e}")
            logger.error(f"Error loading lapsed subscriptions: {e}")
            return

        for subscription, subscription_id, tenant_id in [(s, s.id, s.tenant_id) for s in candidates]:
            try:
                subscription.status = SubscriptionStatus.GRACE_PERIOD.value
                subscription.updated_at = now
                await subscriptions.session.commit()
            except Exception as e:
                await subscriptions.session.rollback()
                result.messages.append(f"Failed to start grace period for subscription {subscription_id}: {e}")
                logger.error(f"Error starting grace period for subscription {subscription_id}: {e}")
                continue

            result.grace_period_count += 1
            result.messages.append(
                f"Subscription {subscription_id} for tenant {tenant_id} entered grace period"
            )
            logger.info(
                f"Subscription {subscription_id} for tenant {tenant_id} entered grace period",
                extra={"tenant_id": tenant_id, "subscription_id": subscription_id},
            )
            await notifier.send_grace_period_started(subscription)

    async def _send_warnings(
        self,
        subscriptions: SubscriptionRepository,
        notifier: SubscriptionNotificationService,
        now: datetime,
        result: LifecycleRunResult,
    ) -> None:
        # Windows nest, so a subscription one day out gets the 7, 3 and 1 day warnings
        for days in self.warning_days:
            try:
                candidates = await subscriptions.list_expiring_between(now, now + timedelta(days=days))
            except Exception as e:
                await subscriptions.session.rollback()
                result.messages.append(f"Failed to load subscriptions expiring in {days} days: {e}")
                logger.error(f"Error loading subscriptions expiring in {days} days: {e}")
                continue

            for subscription in candidates:
                sent = await notifier.send_expiration_warning(subscription, days)
                if sent:
                    result.warnings_sent += 1
                    result.messages.append(
                        f"Sent {days}-day expiration warning for subscription {subscription.id}"
                    )

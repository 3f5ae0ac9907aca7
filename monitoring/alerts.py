"""
============================================================================
UPTIME ENGINE - ALERT DISPATCHER
============================================================================
Turns alert requests from the state machine into per-channel deliveries.

Design
------
AlertDispatcher uses an internal asyncio.Queue. The state machine calls
``request_alert()`` which is non-blocking: it pushes a request onto the
queue. A separate ``_dispatch_loop()`` task pulls requests off one at a
time, looks up the team's channels subscribed to the event, applies the
per-channel cooldown and fans the sends out concurrently.

This keeps a slow notifier from ever blocking a check.

Cooldown Logic
--------------
Each channel carries ``cooldown_minutes`` and ``last_alert_at``. A send
is allowed when the channel has never alerted or the cooldown has fully
elapsed. A suppressed request leaves ``last_alert_at`` untouched, so the
window is measured from the last delivery that actually happened.

Failures
--------
A failing channel never affects the others. Its error is stored as
``last_error``; there is no retry.
============================================================================
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from config.settings import AlertSettings
from monitoring.interfaces import ChannelSender, ChannelStore
from monitoring.models import AlertChannel
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("AlertDispatcher")


# ============================================================================
# QUEUE ITEMS
# ============================================================================

@dataclass
class AlertRequest:
    """One alert request travelling through the internal queue."""
    team_id: str
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)
    requested_at: datetime = field(default_factory=TimeHelper.get_utc_now)


@dataclass
class DeliveryReport:
    """Outcome of fanning one request out to a team's channels."""
    sent: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    suppressed: List[str] = field(default_factory=list)


# ============================================================================
# COOLDOWN GATE
# ============================================================================

class AlertCooldownGate:
    """
    Per-channel cooldown.

    Parameters
    ----------
    default_cooldown_minutes : int
        Used for channels without their own cooldown.
    """

    def __init__(self, default_cooldown_minutes: int = 5):
        self.default_cooldown_minutes = default_cooldown_minutes

    def _cooldown(self, channel: AlertChannel) -> timedelta:
        minutes = channel.cooldown_minutes
        if minutes is None:
            minutes = self.default_cooldown_minutes
        return timedelta(minutes=minutes)

    def allow(self, channel: AlertChannel, now: datetime) -> bool:
        """True if the channel may be alerted at ``now``."""
        last = TimeHelper.ensure_utc(channel.last_alert_at)
        if last is None:
            return True
        return now - last >= self._cooldown(channel)

    def record_success(self, channel: AlertChannel, now: datetime) -> None:
        channel.last_alert_at = now
        channel.alerts_sent += 1
        channel.last_error = None

    def record_failure(self, channel: AlertChannel, error: str) -> None:
        channel.last_error = error


# ============================================================================
# DEFAULT SENDER
# ============================================================================

class LoggingSender:
    """
    Fallback sender: writes the alert to the log. Concrete notifiers
    (email, Slack, Telegram, ...) live outside the engine and are
    registered per channel type.
    """

    async def send(self, channel: AlertChannel, event: str, payload: Dict[str, Any]) -> None:
        logger.info(
            f"[ALERT] channel={channel.name} ({channel.type}) event={event} "
            f"monitor={payload.get('monitor_name')} url={payload.get('url')}"
        )


# ============================================================================
# DISPATCHER
# ============================================================================

class AlertDispatcher:
    """
    Central hub for alert delivery; implements the AlertSink contract.

    Parameters
    ----------
    channels : ChannelStore
        Channel lookup and delivery bookkeeping.
    senders : mapping, optional
        Channel type → sender. Unregistered types use LoggingSender.
    settings : AlertSettings, optional
        Queue size and default cooldown.
    now : callable, optional
        Wall clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        channels: ChannelStore,
        senders: Optional[Mapping[str, ChannelSender]] = None,
        settings: Optional[AlertSettings] = None,
        now: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.settings = settings or AlertSettings()
        self.channels = channels
        self.now = now
        self.gate = AlertCooldownGate(self.settings.default_cooldown_minutes)

        self._senders: Dict[str, ChannelSender] = dict(senders or {})
        self._default_sender: ChannelSender = LoggingSender()

        # --- internal queue ---
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.settings.queue_maxsize)

        # --- counters ---
        self._dropped = 0
        self._delivered = 0
        self._failed = 0
        self._suppressed = 0

        # --- lifecycle ---
        self._running = False
        self._dispatch_task: Optional[asyncio.Task] = None

        logger.info(
            f"AlertDispatcher created, default_cooldown="
            f"{self.settings.default_cooldown_minutes}m, "
            f"queue_maxsize={self.settings.queue_maxsize}"
        )

    def register_sender(self, channel_type: str, sender: ChannelSender) -> None:
        self._senders[channel_type] = sender

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background dispatch loop."""
        if self._running:
            logger.warning("AlertDispatcher is already running")
            return
        self._running = True
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.info("✓ AlertDispatcher started, dispatch loop active")

    async def stop(self) -> None:
        """Stop the dispatch loop, then deliver whatever is still queued."""
        self._running = False
        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        drained = await self.flush()
        if drained:
            logger.info(f"[AlertDispatcher] Delivered {drained} remaining alerts on shutdown")
        logger.info("✓ AlertDispatcher stopped")

    def request_alert(self, team_id: str, event: str, payload: Dict[str, Any]) -> None:
        """Non-blocking enqueue. Drops the request if the queue is full."""
        request = AlertRequest(team_id=team_id, event=event, payload=dict(payload))
        try:
            self._queue.put_nowait(request)
            logger.debug(
                f"[AlertDispatcher] Enqueued {event} alert for team={team_id}, "
                f"queue_size={self._queue.qsize()}"
            )
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                f"[AlertDispatcher] Alert queue is full ({self._queue.maxsize}). "
                f"Dropping {event} alert for monitor {payload.get('monitor_id')}"
            )

    async def flush(self) -> int:
        """Deliver every queued request inline. Returns how many were handled."""
        handled = 0
        while True:
            try:
                request = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            try:
                await self.deliver(request)
            except Exception as e:
                logger.opt(exception=e).error(f"[AlertDispatcher] Failed to deliver {request.event} alert: {e}")
            finally:
                self._queue.task_done()
            handled += 1
        return handled

    # ------------------------------------------------------------------
    # DISPATCH LOOP
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        """Pull requests off the queue one at a time until stopped."""
        logger.info("[AlertDispatcher] Dispatch loop started")
        while self._running:
            try:
                request = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue  # loop back and check self._running

            try:
                await self.deliver(request)
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[AlertDispatcher] Unhandled error delivering {request.event} alert: {e}"
                )
            finally:
                self._queue.task_done()
        logger.info("[AlertDispatcher] Dispatch loop exited")

    # ------------------------------------------------------------------
    # DELIVERY
    # ------------------------------------------------------------------

    async def deliver(self, request: AlertRequest) -> DeliveryReport:
        """
        Fan one request out to every eligible channel.

        Sends run concurrently and independently; one failing channel
        does not stop the others.
        """
        report = DeliveryReport()
        channels = await self.channels.list_channels(request.team_id, request.event)
        now = self.now()

        eligible: List[AlertChannel] = []
        for channel in channels:
            if not channel.wants(request.event):
                continue
            if not self.gate.allow(channel, now):
                report.suppressed.append(channel.id)
                logger.debug(
                    f"[AlertDispatcher] {request.event} alert suppressed by cooldown "
                    f"on channel {channel.id}"
                )
                continue
            eligible.append(channel)

        outcomes = await asyncio.gather(
            *(self._sender_for(channel).send(channel, request.event, request.payload) for channel in eligible),
            return_exceptions=True,
        )

        for channel, outcome in zip(eligible, outcomes):
            if isinstance(outcome, BaseException):
                error = str(outcome) or type(outcome).__name__
                self.gate.record_failure(channel, error)
                report.failed[channel.id] = error
                logger.warning(
                    f"[AlertDispatcher] Channel {channel.name} ({channel.type}) failed: {error}"
                )
                await self._record(self.channels.record_channel_error(channel.id, error), channel)
            else:
                self.gate.record_success(channel, now)
                report.sent.append(channel.id)
                await self._record(self.channels.record_channel_success(channel.id, now), channel)

        self._delivered += len(report.sent)
        self._failed += len(report.failed)
        self._suppressed += len(report.suppressed)

        if report.sent:
            logger.info(
                f"[AlertDispatcher] ✓ {request.event} alert for "
                f"{request.payload.get('monitor_name')} sent via {len(report.sent)} channel(s)"
            )
        return report

    def _sender_for(self, channel: AlertChannel) -> ChannelSender:
        return self._senders.get(channel.type, self._default_sender)

    @staticmethod
    async def _record(operation, channel: AlertChannel) -> None:
        try:
            await operation
        except Exception as e:
            logger.error(f"[AlertDispatcher] Failed to update channel {channel.id} bookkeeping: {e}")

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "queue_size": self._queue.qsize(),
            "delivered": self._delivered,
            "failed": self._failed,
            "suppressed": self._suppressed,
            "dropped": self._dropped,
            "is_running": self._running,
        }

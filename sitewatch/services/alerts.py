"""
Notification dispatch for classified events.

The engine hands every appended DeviceEvent to the dispatcher; handlers
(email, chat, pager integrations) live outside the core and are registered
here. Delivery failures are logged and never affect the write that produced
the event.
"""

import inspect
from collections import deque
from collections.abc import Awaitable, Callable

import structlog

from sitewatch.domain.models import DeviceEvent, Severity

logger = structlog.get_logger(__name__)

AlertHandler = Callable[[DeviceEvent], None] | Callable[[DeviceEvent], Awaitable[None]]

SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class AlertDispatcher:
    """Routes events at or above a severity threshold to handlers."""

    def __init__(
        self,
        min_severity: Severity = Severity.WARNING,
        handlers: list[AlertHandler] | None = None,
        history_size: int = 1000,
    ) -> None:
        self.min_severity = min_severity
        self.handlers: list[AlertHandler] = list(handlers or [])
        self.alert_history: deque[DeviceEvent] = deque(maxlen=history_size)
        self.logger = logger.bind(component="alert_dispatcher")

    def add_handler(self, handler: AlertHandler) -> None:
        self.handlers.append(handler)

    def should_dispatch(self, event: DeviceEvent) -> bool:
        return SEVERITY_RANK[event.severity] >= SEVERITY_RANK[self.min_severity]

    async def dispatch(self, events: list[DeviceEvent]) -> int:
        """Send qualifying events to every handler. Returns how many events qualified."""
        dispatched = 0
        handlers = self.handlers or [self._log_alert_handler]

        for event in events:
            if not self.should_dispatch(event):
                continue
            dispatched += 1
            self.alert_history.append(event)
            for handler in handlers:
                try:
                    if inspect.iscoroutinefunction(handler):
                        await handler(event)
                    else:
                        handler(event)
                except Exception as e:
                    self.logger.error(
                        "alert_dispatch_failed",
                        error=str(e),
                        event_id=event.id,
                        alert_title=event.title,
                    )
        return dispatched

    def _log_alert_handler(self, event: DeviceEvent) -> None:
        """Default handler: record the alert in the structured log."""
        self.logger.warning(
            "alert_dispatched",
            event_id=event.id,
            severity=event.severity.value,
            event_type=event.event_type.value,
            title=event.title,
            site_id=event.site_id,
            device_id=event.device_id,
        )

"""User notifications filtered by per-level preferences."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Protocol, Tuple

from django.contrib import messages

logger = logging.getLogger(__name__)

LEVELS = ("success", "info", "warning", "error")


class NotificationSink(Protocol):
    def send(self, level: str, message: str) -> None:
        ...


@dataclass
class NotificationPreferences:
    success: bool = True
    info: bool = True
    warning: bool = True
    error: bool = True

    @classmethod
    def from_mapping(cls, values: Mapping[str, bool]) -> "NotificationPreferences":
        unknown = set(values) - set(LEVELS)
        if unknown:
            raise ValueError(f"Unknown notification levels: {', '.join(sorted(unknown))}")
        return cls(**{level: bool(enabled) for level, enabled in values.items()})

    def allows(self, level: str) -> bool:
        return bool(getattr(self, level, False))


class DjangoMessagesSink:
    """Deliver notifications through ``django.contrib.messages`` for one request."""

    _ADD = {
        "success": messages.success,
        "info": messages.info,
        "warning": messages.warning,
        "error": messages.error,
    }

    def __init__(self, request) -> None:
        self.request = request

    def send(self, level: str, message: str) -> None:
        self._ADD[level](self.request, message, fail_silently=True)


@dataclass
class RecordingSink:
    """Keep notifications in memory, e.g. to echo them in a JSON response."""

    sent: List[Tuple[str, str]] = field(default_factory=list)

    def send(self, level: str, message: str) -> None:
        self.sent.append((level, message))


class PreferenceAwareNotifier:
    """Forward notifications to each sink unless the level is switched off."""

    def __init__(self, *sinks: NotificationSink, preferences: NotificationPreferences | None = None) -> None:
        self.sinks = sinks
        self.preferences = preferences or NotificationPreferences()

    def notify(self, level: str, message: str) -> bool:
        if level not in LEVELS:
            raise ValueError(f"Unknown notification level: {level}")
        if not self.preferences.allows(level):
            logger.debug("Suppressed %s notification: %s", level, message)
            return False
        for sink in self.sinks:
            sink.send(level, message)
        return True

    def success(self, message: str) -> bool:
        return self.notify("success", message)

    def info(self, message: str) -> bool:
        return self.notify("info", message)

    def warning(self, message: str) -> bool:
        return self.notify("warning", message)

    def error(self, message: str) -> bool:
        return self.notify("error", message)

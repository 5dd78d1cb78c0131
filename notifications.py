"""
Transient user-facing notifications.

The web app flashes them into the next rendered page; the MCP server and the
tests collect them in a list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from flask import flash

logger = logging.getLogger(__name__)

DEFAULT = "default"
DESTRUCTIVE = "destructive"


@dataclass
class Notification:
    title: str
    description: str = ""
    variant: str = DEFAULT

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "description": self.description, "variant": self.variant}


class Notifier:
    """Collects notifications in memory."""

    def __init__(self) -> None:
        self.messages: List[Notification] = []

    def notify(self, title: str, description: str = "", variant: str = DEFAULT) -> Notification:
        note = Notification(title, description, variant)
        if variant == DESTRUCTIVE:
            logger.warning(f"Notify [{variant}] {title}: {description}")
        else:
            logger.info(f"Notify {title}: {description}")
        self.messages.append(note)
        return note

    def error(self, title: str, description: str = "") -> Notification:
        return self.notify(title, description, DESTRUCTIVE)

    def drain(self) -> List[Notification]:
        messages, self.messages = self.messages, []
        return messages


class FlashNotifier(Notifier):
    """Notifier that hands each message to Flask's flash()."""

    def notify(self, title: str, description: str = "", variant: str = DEFAULT) -> Notification:
        note = super().notify(title, description, variant)
        flash({"title": title, "description": description}, variant)
        return note

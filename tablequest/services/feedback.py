"""Audio/visual feedback notifications handed to the presentation layer."""
import logging
from enum import Enum
from typing import Dict, List

logger = logging.getLogger(__name__)


class FeedbackEvent(str, Enum):
    """Discrete cue the client may turn into a sound or animation."""
    ANSWER_CORRECT = "answer_correct"
    ANSWER_INCORRECT = "answer_incorrect"
    CLICK = "click"
    BADGE_UNLOCKED = "badge_unlocked"


class FeedbackCollector:
    """
    Collects feedback events raised while handling one request.

    Events are fire-and-forget: nothing in the engine reads them back.
    The routers return them to the client under "events".
    """

    def __init__(self):
        self._events: List[Dict] = []

    def emit(self, event: FeedbackEvent, **details) -> None:
        logger.debug(f"Feedback event {event.value} {details or ''}".rstrip())
        self._events.append({"type": event.value, **details})

    def drain(self) -> List[Dict]:
        """Return collected events and start over."""
        events, self._events = self._events, []
        return events

"""Badge catalog and achievement rules."""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session
from tablequest.constants import (
    PERFECTION_MIN_ANSWERS,
    TOPIC_MASTERY_SUCCESS_RATE,
    SPEED_MAX_SESSION_SECONDS,
    SPEED_MIN_ANSWERS,
    TRACKED_TOPICS,
)
from tablequest.db.models import ProfileBadge

logger = logging.getLogger(__name__)


class BadgeKind(str, Enum):
    """Kind of achievement a badge rewards."""
    FIRST_COMPLETION = "first_completion"
    PERFECTION = "perfection"
    SPEED = "speed"
    TOPIC_MASTERY = "topic_mastery"


@dataclass(frozen=True)
class Badge:
    """Immutable catalog entry."""
    kind: BadgeKind
    display_name: str
    icon: str
    description: Optional[str] = None
    topic: Optional[int] = None

    @property
    def id(self) -> str:
        if self.kind == BadgeKind.TOPIC_MASTERY:
            return f"topic_{self.topic}_master"
        return _FIXED_IDS[self.kind]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "display_name": self.display_name,
            "description": self.description,
            "icon": self.icon,
            "topic": self.topic,
        }


_FIXED_IDS = {
    BadgeKind.FIRST_COMPLETION: "first_steps",
    BadgeKind.PERFECTION: "perfection",
    BadgeKind.SPEED: "speed",
}

FIRST_STEPS = Badge(BadgeKind.FIRST_COMPLETION, "First Steps", "🎯", "Finish your first challenge")
PERFECTION = Badge(BadgeKind.PERFECTION, "Perfection", "💯", "Answer 10 questions without a mistake")
SPEED = Badge(BadgeKind.SPEED, "Lightning", "⚡", "Finish a challenge in under 5 minutes")

_TOPIC_BADGE_ID = re.compile(r"^topic_(\d+)_master$")


def topic_mastery_badge(topic: int) -> Badge:
    """Badge for mastering one multiplication table."""
    return Badge(
        BadgeKind.TOPIC_MASTERY,
        f"Master of {topic}",
        "🥇",
        f"Score 90% or better on the {topic} times table",
        topic=topic,
    )


def badge_catalog() -> List[Badge]:
    """All badges shown to the learner, fixed ones first."""
    return [FIRST_STEPS, PERFECTION, SPEED] + [topic_mastery_badge(t) for t in TRACKED_TOPICS]


def get_badge(badge_id: str) -> Optional[Badge]:
    """
    Look up a catalog entry by id.

    Topic mastery ids are parsed rather than enumerated, so any table
    number resolves.

    Args:
        badge_id: e.g. "perfection" or "topic_7_master"

    Returns:
        Badge, or None for an unknown id
    """
    for badge in (FIRST_STEPS, PERFECTION, SPEED):
        if badge.id == badge_id:
            return badge
    match = _TOPIC_BADGE_ID.match(badge_id or "")
    if match:
        return topic_mastery_badge(int(match.group(1)))
    return None


def evaluate_achievements(
    answered: int,
    target: int,
    success_rate: float,
    duration_seconds: float,
    topic: Optional[int] = None
) -> List[str]:
    """
    Decide which badges a finished session earns.

    Rules:
    - first steps: the session reached its target
    - perfection: every answer correct, at least PERFECTION_MIN_ANSWERS answers
    - topic mastery: table mode with success rate >= TOPIC_MASTERY_SUCCESS_RATE
    - speed: under SPEED_MAX_SESSION_SECONDS with at least SPEED_MIN_ANSWERS answers

    Args:
        answered: Answers given in the session
        target: Session target
        success_rate: Correct / answered for the session (0.0-1.0)
        duration_seconds: Wall time from start to finish
        topic: Table practised, None outside table mode

    Returns:
        Badge ids in rule order
    """
    earned = []

    if answered >= target:
        earned.append(FIRST_STEPS.id)

    if success_rate == 1.0 and answered >= PERFECTION_MIN_ANSWERS:
        earned.append(PERFECTION.id)

    if topic is not None and success_rate >= TOPIC_MASTERY_SUCCESS_RATE:
        earned.append(topic_mastery_badge(topic).id)

    if duration_seconds < SPEED_MAX_SESSION_SECONDS and answered >= SPEED_MIN_ANSWERS:
        earned.append(SPEED.id)

    return earned


def get_owned_badge_ids(db: Session, profile_id: str) -> List[str]:
    """Badge ids owned by a profile, oldest first."""
    rows = db.query(ProfileBadge).filter(
        ProfileBadge.profile_id == profile_id
    ).order_by(ProfileBadge.earned_at, ProfileBadge.badge_id).all()
    return [row.badge_id for row in rows]


def award_badges(db: Session, profile_id: str, badge_ids: Iterable[str]) -> List[str]:
    """
    Give badges to a profile. Already-owned badges are skipped.

    Changes are added to the session but not committed.

    Args:
        db: Database session
        profile_id: Profile receiving the badges
        badge_ids: Candidate badge ids

    Returns:
        Ids that were newly awarded
    """
    owned = set(get_owned_badge_ids(db, profile_id))
    newly_awarded = []

    for badge_id in badge_ids:
        if badge_id in owned:
            continue
        db.add(ProfileBadge(profile_id=profile_id, badge_id=badge_id, earned_at=datetime.utcnow()))
        owned.add(badge_id)
        newly_awarded.append(badge_id)
        logger.info(f"Badge unlocked: {badge_id}", extra={"profile_id": profile_id, "badge_id": badge_id})

    if newly_awarded:
        db.flush()

    return newly_awarded

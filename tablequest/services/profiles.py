"""Profile persistence: identities, settings, stars, badges and progress.

This is the storage side of the application. Every write goes through
_commit(), which rolls back and raises PersistenceWriteFailure on a database
error; public helpers that promise a boolean catch it and return False so
the practice session can keep going on in-memory state.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set
from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tablequest.constants import (
    DEFAULT_AVATAR,
    DEFAULT_SETTINGS,
    PROFILE_ID_PREFIX,
    RECENT_SESSION_HISTORY_LIMIT,
    SETTINGS_SCHEMA_VERSION,
)
from tablequest.db.init_db import APP_STATE_ID
from tablequest.db.models import AppState, PracticeSessionRecord, Profile, ProfileBadge, TopicStat
from tablequest.errors import NoActiveProfile, PersistenceWriteFailure, ProfileNotFound
from tablequest.services.achievements import award_badges, get_badge, get_owned_badge_ids
from tablequest.services.mastery import (
    build_topic_grid,
    fold_session_result,
    get_global_statistics,
    get_or_create_topic_stat,
    get_topic_stats_map,
    update_topic_stat,
)
from tablequest.services.session_engine import SessionResults

logger = logging.getLogger(__name__)


def _commit(db: Session, action: str, profile_id: str = None) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not {action}: {e}", exc_info=True, extra={"profile_id": profile_id})
        raise PersistenceWriteFailure(f"Could not {action}") from e


# Settings schema

def _settings_v0_to_v1(payload: Dict) -> Dict:
    """v1 introduced the sound toggle and preferred difficulty."""
    upgraded = dict(payload)
    upgraded.setdefault("sound_enabled", DEFAULT_SETTINGS["sound_enabled"])
    upgraded.setdefault("difficulty", DEFAULT_SETTINGS["difficulty"])
    return upgraded


def _settings_v1_to_v2(payload: Dict) -> Dict:
    """v2 introduced the validation delay and per-session question count."""
    upgraded = dict(payload)
    upgraded.setdefault("validation_delay_ms", DEFAULT_SETTINGS["validation_delay_ms"])
    upgraded.setdefault("questions_per_session", DEFAULT_SETTINGS["questions_per_session"])
    return upgraded


SETTINGS_UPGRADES: Dict[int, Callable[[Dict], Dict]] = {
    0: _settings_v0_to_v1,
    1: _settings_v1_to_v2,
}
"""Upgrade function keyed by the version it upgrades from."""


def upgrade_settings(payload: Optional[Dict], version: int) -> Dict:
    """
    Bring a stored settings payload up to SETTINGS_SCHEMA_VERSION.

    Applies one upgrade function per version step. Unknown keys are kept;
    missing keys get their defaults. Never raises on missing data.

    Args:
        payload: Stored settings (may be None)
        version: Version the payload was written with

    Returns:
        Settings dictionary at the current version
    """
    settings = dict(payload or {})
    version = max(0, version or 0)

    while version < SETTINGS_SCHEMA_VERSION:
        settings = SETTINGS_UPGRADES[version](settings)
        version += 1

    # Keys dropped from a current-version payload fall back to their defaults
    return {**DEFAULT_SETTINGS, **settings}


def get_settings(profile: Profile) -> Dict:
    """Current-version settings of a profile."""
    return upgrade_settings(profile.settings, profile.settings_version)


def update_settings(db: Session, profile_id: str, changes: Dict) -> Dict:
    """
    Merge setting changes into a profile.

    Args:
        db: Database session
        profile_id: Profile to update
        changes: Known setting names and their new values

    Returns:
        The full updated settings
    """
    profile = get_profile(db, profile_id)
    settings = get_settings(profile)
    settings.update({k: v for k, v in changes.items() if k in DEFAULT_SETTINGS})
    profile.settings = settings
    profile.settings_version = SETTINGS_SCHEMA_VERSION
    _commit(db, "update settings", profile_id)
    return settings


def reset_setting(db: Session, profile_id: str, name: str):
    """
    Restore one setting to its default.

    Returns:
        The default value, or None for an unknown setting name
    """
    if name not in DEFAULT_SETTINGS:
        return None
    update_settings(db, profile_id, {name: DEFAULT_SETTINGS[name]})
    return DEFAULT_SETTINGS[name]


# Profiles

def generate_profile_id() -> str:
    return f"{PROFILE_ID_PREFIX}{uuid.uuid4().hex}"


def list_profiles(db: Session) -> List[Profile]:
    """All profiles, most recently used first."""
    return db.query(Profile).order_by(desc(Profile.last_seen_at), Profile.display_name).all()


def get_profile(db: Session, profile_id: str) -> Profile:
    """
    Fetch a profile.

    Raises:
        ProfileNotFound: If no profile has this id
    """
    profile = db.get(Profile, profile_id) if profile_id else None
    if profile is None:
        raise ProfileNotFound(f"Profile {profile_id} not found")
    return profile


def create_profile(db: Session, display_name: str, avatar_id: str = DEFAULT_AVATAR) -> Profile:
    """Create a profile with empty progress and default settings."""
    now = datetime.utcnow()
    profile = Profile(
        id=generate_profile_id(),
        display_name=display_name,
        avatar_id=avatar_id or DEFAULT_AVATAR,
        created_at=now,
        last_seen_at=now,
        total_stars=0,
        settings=dict(DEFAULT_SETTINGS),
        settings_version=SETTINGS_SCHEMA_VERSION,
    )
    db.add(profile)
    _commit(db, "create profile", profile.id)
    logger.info(f"Profile created: {display_name}", extra={"profile_id": profile.id})
    return profile


def update_profile(
    db: Session,
    profile_id: str,
    display_name: Optional[str] = None,
    avatar_id: Optional[str] = None
) -> Profile:
    """Rename a profile and/or change its avatar."""
    profile = get_profile(db, profile_id)
    if display_name:
        profile.display_name = display_name
    if avatar_id:
        profile.avatar_id = avatar_id
    _commit(db, "update profile", profile_id)
    return profile


def delete_profile(db: Session, profile_id: str) -> bool:
    """
    Delete a profile and all of its progress.

    Clears the active profile pointer when it referenced this profile.

    Returns:
        False if the profile did not exist
    """
    profile = db.get(Profile, profile_id)
    if profile is None:
        return False

    state = _get_app_state(db)
    if state.active_profile_id == profile_id:
        state.active_profile_id = None

    db.delete(profile)
    _commit(db, "delete profile", profile_id)
    logger.info("Profile deleted", extra={"profile_id": profile_id})
    return True


def _get_app_state(db: Session) -> AppState:
    state = db.get(AppState, APP_STATE_ID)
    if state is None:
        state = AppState(id=APP_STATE_ID)
        db.add(state)
        db.flush()
    return state


def get_active_profile_id(db: Session) -> Optional[str]:
    return _get_app_state(db).active_profile_id


def set_active_profile(db: Session, profile_id: Optional[str]) -> Optional[Profile]:
    """
    Make a profile the active one, or clear the selection with None.

    Activating a profile refreshes its last_seen_at.

    Raises:
        ProfileNotFound: If profile_id is given but unknown
    """
    state = _get_app_state(db)

    if profile_id is None:
        state.active_profile_id = None
        _commit(db, "clear active profile")
        return None

    profile = get_profile(db, profile_id)
    profile.last_seen_at = datetime.utcnow()
    state.active_profile_id = profile.id
    _commit(db, "set active profile", profile_id)
    return profile


def require_active_profile(db: Session) -> Profile:
    """
    The active profile.

    Raises:
        NoActiveProfile: If none is selected or it no longer exists
    """
    profile_id = get_active_profile_id(db)
    profile = db.get(Profile, profile_id) if profile_id else None
    if profile is None:
        raise NoActiveProfile("No active profile selected")
    return profile


# Progress

@dataclass
class ProgressRecord:
    """Everything stored for one profile."""
    player: Dict
    statistics: Dict[int, Dict] = field(default_factory=dict)
    badges: Set[str] = field(default_factory=set)
    settings: Dict = field(default_factory=lambda: dict(DEFAULT_SETTINGS))
    total_stars: int = 0

    def to_dict(self) -> Dict:
        return {
            "player": dict(self.player),
            "statistics": {str(topic): dict(stats) for topic, stats in self.statistics.items()},
            "badges": sorted(self.badges),
            "settings": dict(self.settings),
            "total_stars": self.total_stars,
        }


def _stat_to_dict(stat: TopicStat) -> Dict:
    return {
        "correct": stat.correct_count,
        "attempts": stat.attempt_count,
        "mastery_tier": stat.mastery_tier,
        "last_session_at": stat.last_session_at.isoformat() + "Z" if stat.last_session_at else None,
        "mean_response_seconds": stat.mean_response_seconds,
    }


def load_progress(db: Session, profile_id: str) -> ProgressRecord:
    """
    Load a profile's progress, filling any missing pieces with defaults.

    Raises:
        ProfileNotFound: If the profile does not exist
    """
    profile = get_profile(db, profile_id)
    return ProgressRecord(
        player={"name": profile.display_name, "avatar": profile.avatar_id},
        statistics={topic: _stat_to_dict(stat) for topic, stat in get_topic_stats_map(db, profile_id).items()},
        badges=set(get_owned_badge_ids(db, profile_id)),
        settings=get_settings(profile),
        total_stars=profile.total_stars or 0,
    )


def save_progress(db: Session, profile_id: str, record: ProgressRecord) -> bool:
    """
    Write a progress record back.

    Badges are only ever added. Topic tiers are recomputed from counts.

    Returns:
        True on success, False if the write failed (logged)
    """
    try:
        profile = get_profile(db, profile_id)
        profile.display_name = record.player.get("name") or profile.display_name
        profile.avatar_id = record.player.get("avatar") or profile.avatar_id
        profile.total_stars = max(0, int(record.total_stars))
        profile.settings = upgrade_settings(record.settings, SETTINGS_SCHEMA_VERSION)
        profile.settings_version = SETTINGS_SCHEMA_VERSION

        for topic, values in record.statistics.items():
            stat = get_or_create_topic_stat(db, profile_id, int(topic))
            stat.correct_count = 0
            stat.attempt_count = 0
            stat.mean_response_seconds = 0.0
            update_topic_stat(
                stat,
                int(values.get("correct", 0)),
                int(values.get("attempts", 0)),
                float(values.get("mean_response_seconds", 0.0)),
            )

        award_badges(db, profile_id, sorted(record.badges))
        _commit(db, "save progress", profile_id)
        return True
    except PersistenceWriteFailure:
        return False


def add_stars(db: Session, profile_id: str, stars: int) -> int:
    """Add stars to a profile's total and return the new total."""
    profile = get_profile(db, profile_id)
    profile.total_stars = (profile.total_stars or 0) + stars
    _commit(db, "add stars", profile_id)
    return profile.total_stars


def reset_progress(db: Session, profile_id: str) -> bool:
    """
    Clear statistics, badges, stars and session history of a profile.

    Identity and settings are kept.

    Returns:
        True on success, False if the write failed (logged)
    """
    profile = get_profile(db, profile_id)
    db.query(TopicStat).filter(TopicStat.profile_id == profile_id).delete()
    db.query(ProfileBadge).filter(ProfileBadge.profile_id == profile_id).delete()
    db.query(PracticeSessionRecord).filter(PracticeSessionRecord.profile_id == profile_id).delete()
    profile.total_stars = 0
    try:
        _commit(db, "reset progress", profile_id)
    except PersistenceWriteFailure:
        return False
    db.expire(profile)
    logger.info("Progress reset", extra={"profile_id": profile_id})
    return True


def record_session_results(db: Session, profile_id: str, results: SessionResults) -> Dict:
    """
    Fold a finished practice session into a profile.

    - table mode: topic counts and mean response time go to the mastery aggregator
    - every mode: stars are added, earned badges are awarded once
    - the session is appended to the history

    Args:
        db: Database session
        profile_id: Profile that played the session
        results: Output of PracticeSession.finish()

    Returns:
        Dictionary with new_badges, total_stars and topic (None outside table mode)

    Raises:
        PersistenceWriteFailure: If the changes could not be committed
    """
    profile = get_profile(db, profile_id)

    try:
        topic_update = None
        if results.topic is not None:
            topic_update = fold_session_result(
                db,
                profile_id,
                results.topic,
                results.correct,
                results.answered,
                results.mean_response_seconds,
            )

        profile.total_stars = (profile.total_stars or 0) + results.stars
        new_badges = award_badges(db, profile_id, results.badges)

        db.add(PracticeSessionRecord(
            profile_id=profile_id,
            mode=results.mode,
            topic=results.topic,
            chosen_numbers=",".join(str(n) for n in results.chosen_numbers) if results.chosen_numbers else None,
            tier=results.tier.value,
            final_tier=results.final_tier.value,
            question_count=results.target,
            answered_count=results.answered,
            correct_count=results.correct,
            stars_earned=results.stars,
            success_percentage=results.success_percentage,
            duration_seconds=results.duration_seconds,
            mean_response_seconds=results.mean_response_seconds,
            started_at=results.started_at,
            completed_at=results.completed_at,
        ))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not stage session results: {e}", exc_info=True, extra={"profile_id": profile_id})
        raise PersistenceWriteFailure("Could not record session results") from e

    _commit(db, "record session results", profile_id)

    return {
        "new_badges": new_badges,
        "total_stars": profile.total_stars,
        "topic": topic_update,
    }


def get_recent_sessions(db: Session, profile_id: str, limit: int = RECENT_SESSION_HISTORY_LIMIT) -> List[Dict]:
    """Most recent finished sessions of a profile."""
    rows = db.query(PracticeSessionRecord).filter(
        PracticeSessionRecord.profile_id == profile_id
    ).order_by(desc(PracticeSessionRecord.completed_at), desc(PracticeSessionRecord.id)).limit(limit).all()

    return [
        {
            "session_id": row.id,
            "mode": row.mode,
            "topic": row.topic,
            "chosen_numbers": [int(n) for n in row.chosen_numbers.split(",")] if row.chosen_numbers else None,
            "tier": row.tier,
            "final_tier": row.final_tier,
            "answered": row.answered_count,
            "correct": row.correct_count,
            "stars": row.stars_earned,
            "success_percentage": row.success_percentage,
            "duration_seconds": row.duration_seconds,
            "mean_response_seconds": row.mean_response_seconds,
            "completed_at": row.completed_at.isoformat() + "Z",
        }
        for row in rows
    ]


def profile_to_dict(profile: Profile, active_profile_id: Optional[str] = None) -> Dict:
    return {
        "id": profile.id,
        "display_name": profile.display_name,
        "avatar_id": profile.avatar_id,
        "created_at": profile.created_at.isoformat() + "Z",
        "last_seen_at": profile.last_seen_at.isoformat() + "Z",
        "is_active": profile.id == active_profile_id,
    }


def build_player_summary(db: Session, profile_id: str) -> Dict:
    """
    Everything the dashboard shows for a profile.

    Returns:
        Name, avatar, stars, owned badges, global statistics, topic grid
        and recent sessions
    """
    profile = get_profile(db, profile_id)
    badges = [get_badge(badge_id) for badge_id in get_owned_badge_ids(db, profile_id)]
    owned = [badge.to_dict() for badge in badges if badge is not None]

    return {
        "profile_id": profile.id,
        "display_name": profile.display_name,
        "avatar_id": profile.avatar_id,
        "total_stars": profile.total_stars or 0,
        "badges": owned,
        "badge_count": len(owned),
        "statistics": get_global_statistics(db, profile_id),
        "topics": build_topic_grid(db, profile_id),
        "recent_sessions": get_recent_sessions(db, profile_id),
        "settings": get_settings(profile),
    }

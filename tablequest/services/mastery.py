"""Mastery tier calculation and per-topic statistics."""
from datetime import datetime
from typing import Dict, List
from sqlalchemy.orm import Session
from tablequest.constants import MASTERY_TIERS, MASTERY_TIER_LABELS, MASTERED_MIN_TIER, TRACKED_TOPICS
from tablequest.db.models import TopicStat


def calculate_mastery_tier(correct_count: int, attempt_count: int) -> int:
    """
    Calculate the 1-5 mastery tier of a topic.

    Rules, first match wins (ratio = correct / attempts):
    - ratio >= 0.95 and attempts >= 50 -> 5
    - ratio >= 0.85 and attempts >= 30 -> 4
    - ratio >= 0.75 and attempts >= 20 -> 3
    - ratio >= 0.60 and attempts >= 10 -> 2
    - otherwise (including no attempts) -> 1

    Args:
        correct_count: Cumulative correct answers
        attempt_count: Cumulative answers

    Returns:
        Integer tier between 1 and 5
    """
    if attempt_count == 0:
        return 1

    ratio = correct_count / attempt_count

    for tier, min_ratio, min_attempts in MASTERY_TIERS:
        if ratio >= min_ratio and attempt_count >= min_attempts:
            return tier

    return 1


def get_tier_label(tier: int) -> str:
    """Display label for a mastery tier."""
    return MASTERY_TIER_LABELS.get(tier, MASTERY_TIER_LABELS[1])


def get_or_create_topic_stat(db: Session, profile_id: str, topic: int) -> TopicStat:
    """Fetch a profile's statistics row for a topic, adding an empty one if missing."""
    stat = db.get(TopicStat, (profile_id, topic))
    if stat is None:
        stat = TopicStat(
            profile_id=profile_id,
            topic=topic,
            correct_count=0,
            attempt_count=0,
            mastery_tier=1,
            mean_response_seconds=0.0,
        )
        db.add(stat)
    return stat


def update_topic_stat(
    stat: TopicStat,
    correct_delta: int,
    attempts_delta: int,
    mean_response_seconds: float = 0.0,
    session_at: datetime = None
) -> Dict:
    """
    Add one session's counts to a topic and recompute its tier.

    The mean response time is a running mean weighted by correct answers.

    Args:
        stat: TopicStat object to update
        correct_delta: Correct answers in the session
        attempts_delta: Answers in the session
        mean_response_seconds: Session mean over correct answers
        session_at: When the session finished (defaults to now)

    Returns:
        Dictionary with updated values for easy inspection
    """
    previous_correct = stat.correct_count or 0
    stat.correct_count = previous_correct + correct_delta
    stat.attempt_count = (stat.attempt_count or 0) + attempts_delta

    if correct_delta > 0 and stat.correct_count > 0:
        stat.mean_response_seconds = round(
            ((stat.mean_response_seconds or 0.0) * previous_correct
             + mean_response_seconds * correct_delta) / stat.correct_count,
            2,
        )

    stat.last_session_at = session_at or datetime.utcnow()

    # Tier is always recomputed from totals, never stepped
    stat.mastery_tier = calculate_mastery_tier(stat.correct_count, stat.attempt_count)

    return {
        "topic": stat.topic,
        "correct_count": stat.correct_count,
        "attempt_count": stat.attempt_count,
        "mastery_tier": stat.mastery_tier,
        "tier_label": get_tier_label(stat.mastery_tier),
        "mean_response_seconds": stat.mean_response_seconds,
    }


def fold_session_result(
    db: Session,
    profile_id: str,
    topic: int,
    correct_delta: int,
    attempts_delta: int,
    mean_response_seconds: float = 0.0
) -> Dict:
    """
    Fold a table-mode session into a profile's cumulative statistics.

    Changes are flushed but not committed.

    Returns:
        Updated topic values (see update_topic_stat)
    """
    stat = get_or_create_topic_stat(db, profile_id, topic)
    result = update_topic_stat(stat, correct_delta, attempts_delta, mean_response_seconds)
    db.flush()
    return result


def get_topic_stats_map(db: Session, profile_id: str) -> Dict[int, TopicStat]:
    """All topic rows of a profile keyed by topic number."""
    stats = db.query(TopicStat).filter(TopicStat.profile_id == profile_id).all()
    return {stat.topic: stat for stat in stats}


def build_topic_grid(db: Session, profile_id: str) -> List[Dict]:
    """
    Per-table tiles for the dashboard.

    Returns:
        One dict per tracked topic with tier, label, attempts and success %
    """
    stats_map = get_topic_stats_map(db, profile_id)
    grid = []

    for topic in TRACKED_TOPICS:
        stat = stats_map.get(topic)
        correct = stat.correct_count if stat else 0
        attempts = stat.attempt_count if stat else 0
        tier = calculate_mastery_tier(correct, attempts)

        grid.append({
            "topic": topic,
            "mastery_tier": tier,
            "tier_label": get_tier_label(tier),
            "attempts": attempts,
            "success_percentage": round(correct / attempts * 100) if attempts else 0,
            "mean_response_seconds": stat.mean_response_seconds if stat else 0.0,
            "is_mastered": tier >= MASTERED_MIN_TIER,
        })

    return grid


def get_global_statistics(db: Session, profile_id: str) -> Dict:
    """
    Totals across the tracked topics.

    Returns:
        total_correct, total_attempts, success_percentage, topics_mastered
    """
    stats_map = get_topic_stats_map(db, profile_id)
    total_correct = 0
    total_attempts = 0
    topics_mastered = 0

    for topic in TRACKED_TOPICS:
        stat = stats_map.get(topic)
        if not stat:
            continue
        total_correct += stat.correct_count
        total_attempts += stat.attempt_count
        if calculate_mastery_tier(stat.correct_count, stat.attempt_count) >= MASTERED_MIN_TIER:
            topics_mastered += 1

    return {
        "total_correct": total_correct,
        "total_attempts": total_attempts,
        "success_percentage": round(total_correct / total_attempts * 100) if total_attempts else 0,
        "topics_mastered": topics_mastered,
    }

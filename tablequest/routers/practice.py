"""Practice session endpoints."""
import logging
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session
from tablequest.constants import (
    ANSWER_SUBMISSION_RATE_LIMIT,
    MAX_QUESTIONS_PER_SESSION,
    MIN_CHOSEN_NUMBERS,
    OPERAND_MAX,
    OPERAND_MIN,
    SESSION_START_RATE_LIMIT,
)
from tablequest.db.database import get_db
from tablequest.errors import (
    InvalidAnswerInput,
    NoActiveQuestion,
    NoActiveSession,
    PersistenceWriteFailure,
    ProfileNotFound,
)
from tablequest.rate_limit import limiter
from tablequest.routers.profiles import get_active_profile
from tablequest.services.achievements import get_badge
from tablequest.services.difficulty import DifficultyTier
from tablequest.services.feedback import FeedbackEvent
from tablequest.services.profiles import get_settings, record_session_results
from tablequest.services.session_engine import PracticeSession, SessionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["practice"])


class StartSessionRequest(BaseModel):
    """Request body for starting a practice session.

    Give a topic for table mode, chosen_numbers for chosen-numbers mode,
    or neither for difficulty mode. Tier and target default to the
    profile's settings.
    """
    topic: Optional[int] = Field(None, ge=OPERAND_MIN, le=OPERAND_MAX, description="Times table to practise")
    chosen_numbers: Optional[List[int]] = Field(None, description="Numbers to combine with each other")
    tier: Optional[DifficultyTier] = None
    target: Optional[int] = Field(None, ge=1, le=MAX_QUESTIONS_PER_SESSION)

    @field_validator("chosen_numbers")
    @classmethod
    def validate_chosen_numbers(cls, v):
        """Need at least two distinct numbers, each in range."""
        if v is None:
            return v
        if any(n < OPERAND_MIN or n > OPERAND_MAX for n in v):
            raise ValueError(f"chosen_numbers must be between {OPERAND_MIN} and {OPERAND_MAX}")
        distinct = sorted(set(v))
        if len(distinct) < MIN_CHOSEN_NUMBERS:
            raise ValueError(f"chosen_numbers needs at least {MIN_CHOSEN_NUMBERS} distinct values")
        return distinct

    @model_validator(mode="after")
    def validate_mode(self):
        if self.topic is not None and self.chosen_numbers:
            raise ValueError("Give either topic or chosen_numbers, not both")
        return self


class AnswerSubmission(BaseModel):
    """Request body for answer submission."""
    answer: Union[int, str] = Field(..., description="The learner's answer as typed")


def get_sessions(request: Request) -> dict:
    return request.app.state.practice_sessions


def get_current_session(request: Request, profile_id: str) -> PracticeSession:
    """Return the profile's in-progress session or answer 409."""
    session = get_sessions(request).get(profile_id)
    if session is None or session.state != SessionState.IN_PROGRESS:
        raise HTTPException(
            status_code=409,
            detail={"error": NoActiveSession.code, "message": "No practice session in progress"}
        )
    return session


@router.post("/start")
@limiter.limit(SESSION_START_RATE_LIMIT)
async def start_session(
    request: Request,
    body: StartSessionRequest,
    db: Session = Depends(get_db)
):
    """
    Start a practice session for the active profile.

    Any session already in progress for the profile is discarded.

    Returns:
    - session snapshot (mode, tier, progress)
    - the first question
    """
    profile = get_active_profile(db)
    learner_settings = get_settings(profile)

    tier = body.tier or DifficultyTier(learner_settings["difficulty"])
    target = body.target or learner_settings["questions_per_session"]

    session = PracticeSession()
    session.start(
        topic=body.topic,
        tier=tier,
        target=target,
        chosen_numbers=body.chosen_numbers,
    )
    get_sessions(request)[profile.id] = session
    session.feedback.emit(FeedbackEvent.CLICK, action="start")

    question = session.next_question()
    logger.info(f"Session started via API: mode={session.mode}", extra={"profile_id": profile.id})

    return {
        **session.snapshot(),
        "question": question.to_dict(),
        "sound_enabled": learner_settings["sound_enabled"],
        "validation_delay_ms": learner_settings["validation_delay_ms"],
        "events": session.feedback.drain(),
    }


@router.post("/question")
async def next_question(request: Request, db: Session = Depends(get_db)):
    """Generate the next question. A pending unanswered question is replaced."""
    profile = get_active_profile(db)
    session = get_current_session(request, profile.id)

    question = session.next_question()
    return {
        "question": question.to_dict(),
        "tier": session.effective_tier.value,
        "progress": session.progress(),
    }


@router.post("/answer")
@limiter.limit(ANSWER_SUBMISSION_RATE_LIMIT)
async def submit_answer(
    request: Request,
    body: AnswerSubmission,
    db: Session = Depends(get_db)
):
    """
    Submit an answer to the pending question.

    Errors:
    - 422 invalid_answer (retry): input is not a whole number
    - 409 no_active_question: nothing to answer

    Returns:
    - correct flag, product, message, hint when wrong
    - stars awarded and session progress
    - session_complete once the target is reached
    """
    profile = get_active_profile(db)
    session = get_current_session(request, profile.id)

    try:
        result = session.submit_answer(body.answer)
    except InvalidAnswerInput as e:
        raise HTTPException(
            status_code=422,
            detail={"error": e.code, "message": str(e), "retry": True}
        )
    except NoActiveQuestion as e:
        raise HTTPException(status_code=409, detail={"error": e.code, "message": str(e)})

    return {**result.to_dict(), "events": session.feedback.drain()}


@router.post("/adjust")
async def adjust_difficulty(request: Request, db: Session = Depends(get_db)):
    """
    Let an adaptive session change tier based on recent answers.

    Returns:
    - changed: whether the tier moved
    - tier_change: from/to tier and direction when it did
    """
    profile = get_active_profile(db)
    session = get_current_session(request, profile.id)

    change = session.adjust_difficulty()
    return {
        "changed": change is not None,
        "tier_change": change.to_dict() if change else None,
        "tier": session.effective_tier.value,
    }


@router.post("/finish")
async def finish_session(request: Request, db: Session = Depends(get_db)):
    """
    Finish the session and fold its results into the profile.

    When the results cannot be written the summary is still returned
    with persisted set to false.

    Returns:
    - results: counts, stars, success %, duration, response times
    - new_badges: badges unlocked by this session
    - total_stars, topic statistics update
    """
    profile = get_active_profile(db)
    session = get_sessions(request).get(profile.id)

    if session is None or session.state == SessionState.IDLE:
        raise HTTPException(
            status_code=409,
            detail={"error": NoActiveSession.code, "message": "No practice session to finish"}
        )
    if session.state == SessionState.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail={"error": "session_already_finished", "message": "Session already finished"}
        )

    try:
        results = session.finish()

        try:
            recorded = record_session_results(db, profile.id, results)
            persisted = True
        except PersistenceWriteFailure:
            recorded = {"new_badges": [], "total_stars": None, "topic": None}
            persisted = False

        new_badges = [get_badge(badge_id) for badge_id in recorded["new_badges"]]
        for badge in new_badges:
            session.feedback.emit(FeedbackEvent.BADGE_UNLOCKED, badge_id=badge.id)

        return {
            "results": results.to_dict(),
            "new_badges": [badge.to_dict() for badge in new_badges],
            "total_stars": recorded["total_stars"],
            "topic": recorded["topic"],
            "persisted": persisted,
            "events": session.feedback.drain(),
        }

    except HTTPException:
        raise
    except ProfileNotFound:
        raise HTTPException(status_code=404, detail="Profile not found")
    except Exception as e:
        db.rollback()
        logger.error(f"Error finishing session: {e}", exc_info=True, extra={"profile_id": profile.id})
        raise HTTPException(status_code=500, detail=f"Error finishing session: {str(e)}")


@router.get("")
async def get_session_state(request: Request, db: Session = Depends(get_db)):
    """Current session of the active profile, or an idle placeholder."""
    profile = get_active_profile(db)
    session = get_sessions(request).get(profile.id)

    if session is None:
        return {"state": SessionState.IDLE.value, "progress": None, "question": None}
    return session.snapshot()

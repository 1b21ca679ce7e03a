"""Profile, settings, badge and dashboard endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session
from tablequest.constants import DEFAULT_AVATAR, MAX_QUESTIONS_PER_SESSION
from tablequest.db.database import get_db
from tablequest.errors import NoActiveProfile, PersistenceWriteFailure, ProfileNotFound
from tablequest.services.achievements import badge_catalog, get_owned_badge_ids
from tablequest.services.difficulty import DifficultyTier
from tablequest.services import profiles as profile_service

router = APIRouter(prefix="/api", tags=["profiles"])


class ProfileCreate(BaseModel):
    """Request body for creating a profile."""
    display_name: str = Field(..., min_length=1, max_length=40, description="Name shown to the learner")
    avatar_id: str = Field(DEFAULT_AVATAR, min_length=1, max_length=40)
    activate: bool = True

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v):
        """Reject names made only of whitespace."""
        if not v.strip():
            raise ValueError("display_name cannot be empty")
        return v.strip()


class ProfileUpdate(BaseModel):
    """Request body for renaming a profile or changing its avatar."""
    display_name: Optional[str] = Field(None, min_length=1, max_length=40)
    avatar_id: Optional[str] = Field(None, min_length=1, max_length=40)

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("display_name cannot be empty")
        return v.strip() if v else v


class SettingsUpdate(BaseModel):
    """Request body for changing learner settings. Omitted fields are unchanged."""
    sound_enabled: Optional[bool] = None
    difficulty: Optional[DifficultyTier] = None
    validation_delay_ms: Optional[int] = Field(None, ge=0, le=10000)
    questions_per_session: Optional[int] = Field(None, ge=1, le=MAX_QUESTIONS_PER_SESSION)


def get_active_profile(db: Session):
    """Return the active profile or answer 409."""
    try:
        return profile_service.require_active_profile(db)
    except NoActiveProfile as e:
        raise HTTPException(status_code=409, detail={"error": e.code, "message": str(e)})


def _persistence_error(e: PersistenceWriteFailure) -> HTTPException:
    return HTTPException(status_code=500, detail={"error": e.code, "message": str(e)})


@router.get("/profiles")
async def list_profiles(db: Session = Depends(get_db)):
    """
    List every profile, most recently used first.

    Returns:
    - profiles: id, name, avatar, timestamps, is_active
    - active_profile_id
    """
    active_id = profile_service.get_active_profile_id(db)
    return {
        "profiles": [
            profile_service.profile_to_dict(p, active_id)
            for p in profile_service.list_profiles(db)
        ],
        "active_profile_id": active_id,
    }


@router.post("/profiles")
async def create_profile(body: ProfileCreate, db: Session = Depends(get_db)):
    """Create a profile and, unless activate is false, make it active."""
    try:
        profile = profile_service.create_profile(db, body.display_name, body.avatar_id)
        if body.activate:
            profile_service.set_active_profile(db, profile.id)
    except PersistenceWriteFailure as e:
        raise _persistence_error(e)

    return profile_service.profile_to_dict(profile, profile_service.get_active_profile_id(db))


@router.patch("/profiles/{profile_id}")
async def update_profile(profile_id: str, body: ProfileUpdate, db: Session = Depends(get_db)):
    """Rename a profile or change its avatar."""
    try:
        profile = profile_service.update_profile(db, profile_id, body.display_name, body.avatar_id)
    except ProfileNotFound:
        raise HTTPException(status_code=404, detail="Profile not found")
    except PersistenceWriteFailure as e:
        raise _persistence_error(e)

    return profile_service.profile_to_dict(profile, profile_service.get_active_profile_id(db))


@router.delete("/profiles/{profile_id}")
async def delete_profile(profile_id: str, request: Request, db: Session = Depends(get_db)):
    """Delete a profile with all its progress."""
    try:
        deleted = profile_service.delete_profile(db, profile_id)
    except PersistenceWriteFailure as e:
        raise _persistence_error(e)

    if not deleted:
        raise HTTPException(status_code=404, detail="Profile not found")

    request.app.state.practice_sessions.pop(profile_id, None)
    return {"deleted": True, "profile_id": profile_id}


@router.post("/profiles/{profile_id}/activate")
async def activate_profile(profile_id: str, db: Session = Depends(get_db)):
    """Make a profile the active one."""
    try:
        profile = profile_service.set_active_profile(db, profile_id)
    except ProfileNotFound:
        raise HTTPException(status_code=404, detail="Profile not found")
    except PersistenceWriteFailure as e:
        raise _persistence_error(e)

    return profile_service.profile_to_dict(profile, profile.id)


@router.post("/profiles/logout")
async def logout(db: Session = Depends(get_db)):
    """Clear the active profile selection."""
    try:
        profile_service.set_active_profile(db, None)
    except PersistenceWriteFailure as e:
        raise _persistence_error(e)
    return {"active_profile_id": None}


@router.delete("/profiles/{profile_id}/progress")
async def reset_progress(profile_id: str, request: Request, db: Session = Depends(get_db)):
    """Clear statistics, badges, stars and history of a profile."""
    try:
        reset = profile_service.reset_progress(db, profile_id)
    except ProfileNotFound:
        raise HTTPException(status_code=404, detail="Profile not found")

    if not reset:
        raise HTTPException(status_code=500, detail="Could not reset progress")

    request.app.state.practice_sessions.pop(profile_id, None)
    return {"reset": True, "profile_id": profile_id}


@router.get("/profile")
async def get_dashboard(db: Session = Depends(get_db)):
    """
    Dashboard for the active profile.

    Returns:
    - display name, avatar, total stars
    - badges owned and badge count
    - global statistics over tables 2-9
    - topic grid with mastery tiers
    - recent sessions and settings
    """
    profile = get_active_profile(db)
    return profile_service.build_player_summary(db, profile.id)


@router.get("/settings")
async def get_settings(db: Session = Depends(get_db)):
    """Settings of the active profile."""
    profile = get_active_profile(db)
    return profile_service.get_settings(profile)


@router.patch("/settings")
async def update_settings(body: SettingsUpdate, db: Session = Depends(get_db)):
    """Change settings of the active profile."""
    profile = get_active_profile(db)
    changes = body.model_dump(exclude_none=True)
    if "difficulty" in changes:
        changes["difficulty"] = changes["difficulty"].value

    try:
        return profile_service.update_settings(db, profile.id, changes)
    except PersistenceWriteFailure as e:
        raise _persistence_error(e)


@router.post("/settings/{name}/reset")
async def reset_setting(name: str, db: Session = Depends(get_db)):
    """Restore one setting of the active profile to its default."""
    profile = get_active_profile(db)

    try:
        value = profile_service.reset_setting(db, profile.id, name)
    except PersistenceWriteFailure as e:
        raise _persistence_error(e)

    if value is None:
        raise HTTPException(status_code=404, detail=f"Unknown setting: {name}")

    return {"name": name, "value": value}


@router.get("/badges")
async def list_badges(db: Session = Depends(get_db)):
    """Badge catalog, flagged with what the active profile owns."""
    active_id = profile_service.get_active_profile_id(db)
    owned = set(get_owned_badge_ids(db, active_id)) if active_id else set()

    return {
        "badges": [
            {**badge.to_dict(), "owned": badge.id in owned}
            for badge in badge_catalog()
        ],
        "owned_count": len(owned),
    }

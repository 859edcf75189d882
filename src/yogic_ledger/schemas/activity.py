"""Activity submission schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ActivitySubmission(BaseModel):
    """A batch of steps reported by a client device."""

    steps: int = Field(..., ge=0, description="Steps counted during the window")
    window_seconds: int = Field(..., gt=0, description="Length of the measurement window")
    speed_kmh: float = Field(0.0, ge=0, description="Average speed reported by the device")
    gps_accuracy_meters: float | None = Field(
        None, ge=0, description="Horizontal GPS accuracy, if a fix was available"
    )
    source: str = Field("step_tracking", max_length=32)


class MilestoneAwardResponse(BaseModel):
    milestone_name: str
    bonus_awarded: int


class ActivityResult(BaseModel):
    """Outcome of an accepted submission."""

    coins_awarded: int
    multiplier: float
    confidence: str
    tier: int
    milestones: list[MilestoneAwardResponse] = Field(default_factory=list)
    referral_unlocked: bool = False

"""Daily check-in schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from .common import HandshakeFields, WireModel


class CheckinRequest(HandshakeFields):
    fid: int = Field(..., gt=0)


class CheckinReward(BaseModel):
    spins: int
    bonus: bool


class CheckinStatusResponse(WireModel):
    """Whether the identity may check in now, and what it would earn."""

    can_check_in: bool = Field(..., alias="canCheckIn")
    last_check_in: int | None = Field(None, alias="lastCheckIn")
    check_in_streak: int = Field(..., alias="checkInStreak")
    total_check_ins: int = Field(..., alias="totalCheckIns")
    next_check_in_time: int | None = Field(None, alias="nextCheckInTime")
    next_reward: CheckinReward = Field(..., alias="nextReward")


class CheckinResponse(WireModel):
    success: bool = True
    check_in_streak: int = Field(..., alias="checkInStreak")
    total_check_ins: int = Field(..., alias="totalCheckIns")
    reward: CheckinReward
    new_spins_left: int = Field(..., alias="newSpinsLeft")

"""Social-graph schemas."""

from pydantic import Field

from .common import WireModel


class FollowingResponse(WireModel):
    is_following: bool = Field(..., alias="isFollowing")

"""
Pydantic schemas for the newsboard API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok"]


class GateRequest(BaseModel):
    password: str = Field(..., max_length=256)


class GateResponse(BaseModel):
    gate_token: Optional[str] = None
    expires_in: Optional[int] = None


class CreateProfileRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    bio: Optional[str] = Field(default=None, max_length=2000)
    profile_pic_url: Optional[str] = Field(default=None, max_length=2048)


class ProfileResponse(BaseModel):
    user_id: str
    handle: str
    name: str
    bio: str
    profile_pic_url: Optional[str] = None
    created_at: float
    updated_at: float


class ProfileStats(BaseModel):
    posts: int
    comments: int
    votes: int
    likes_received: int


class PublicProfileResponse(BaseModel):
    profile: ProfileResponse
    stats: ProfileStats


class MediaItemResponse(BaseModel):
    url: str
    kind: Literal["image", "video"]


class PostResponse(BaseModel):
    post_id: str
    user_id: str
    email: str
    title: str
    content: str
    tags: list[str]
    media_urls: list[str]
    media: list[MediaItemResponse] = Field(default_factory=list)
    created_at: float
    updated_at: float
    like_count: int = 0
    comment_count: int = 0
    liked_by_me: bool = False


class ListPostsResponse(BaseModel):
    posts: list[PostResponse]
    limit: int
    offset: int


class CommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


class CommentResponse(BaseModel):
    comment_id: str
    post_id: str
    user_id: str
    email: str
    content: str
    created_at: float


class ListCommentsResponse(BaseModel):
    comments: list[CommentResponse]


class LikeSummaryResponse(BaseModel):
    post_id: str
    count: int
    liked_by_me: bool


class RankedEntryResponse(BaseModel):
    rank: int
    candidate: str
    votes: int
    percentage: float


class PollResponse(BaseModel):
    poll_id: str
    slug: str
    title: str
    description: str
    teams: list[str]
    is_active: bool
    created_at: float
    entries: list[RankedEntryResponse]
    total_votes: int
    has_voted: bool
    voted_for: Optional[str] = None


class VoteRequest(BaseModel):
    candidate: str = Field(..., min_length=1, max_length=200)


class VoteResponse(BaseModel):
    poll_id: str
    candidate: str
    created_at: float


class ListVotesResponse(BaseModel):
    votes: list[VoteResponse]


class DeletedResponse(BaseModel):
    status: Literal["deleted"]

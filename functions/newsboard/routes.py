"""
HTTP routes for the newsboard API.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from newsboard.auth import AuthUser, GateKeeper, GateLocked
from newsboard.config import Settings, get_settings
from newsboard.db import (
    CommentRecord,
    DbClient,
    DuplicateVoteError,
    PollRecord,
    PostRecord,
    UserRecord,
)
from newsboard.dependencies import (
    get_current_user,
    get_db_client,
    get_gate_keeper,
    get_optional_user,
    get_storage_client,
    require_gate,
)
from newsboard.media import (
    MediaRejected,
    build_media_path,
    is_video_url,
    path_from_public_url,
    validate_upload,
)
from newsboard.schemas import (
    CommentRequest,
    CommentResponse,
    CreateProfileRequest,
    DeletedResponse,
    GateRequest,
    GateResponse,
    HealthResponse,
    LikeSummaryResponse,
    ListCommentsResponse,
    ListPostsResponse,
    ListVotesResponse,
    MediaItemResponse,
    PollResponse,
    PostResponse,
    ProfileResponse,
    ProfileStats,
    PublicProfileResponse,
    RankedEntryResponse,
    UpdateProfileRequest,
    VoteRequest,
    VoteResponse,
)
from newsboard.storage import StorageClient
from newsboard.tally import VoteRecord, tally

logger = logging.getLogger(__name__)

# Reachable without the site password.
public_router = APIRouter()
# Everything else sits behind the gate.
router = APIRouter(dependencies=[Depends(require_gate)])


def _required_text(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail=f"{field_name} is required")
    return cleaned


def _clean_tags(raw: Iterable[str]) -> list[str]:
    """Trim, split comma-separated values, drop empties and duplicates."""
    tags: list[str] = []
    for item in raw:
        for tag in (item or "").split(","):
            tag = tag.strip()
            if tag and tag not in tags:
                tags.append(tag)
    return tags


def _profile_response(user: UserRecord) -> ProfileResponse:
    return ProfileResponse(
        user_id=user.user_id,
        handle=user.handle,
        name=user.name,
        bio=user.bio,
        profile_pic_url=user.profile_pic_url,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _post_response(
    db: DbClient, post: PostRecord, viewer: Optional[AuthUser]
) -> PostResponse:
    likes = db.list_likes(post.post_id)
    return PostResponse(
        **post.as_dict(),
        media=[
            MediaItemResponse(url=url, kind="video" if is_video_url(url) else "image")
            for url in post.media_urls
        ],
        like_count=len(likes),
        comment_count=db.count_comments(post.post_id),
        liked_by_me=bool(viewer) and any(like.user_id == viewer.user_id for like in likes),
    )


def _comment_response(comment: CommentRecord) -> CommentResponse:
    return CommentResponse(**comment.as_dict())


def _vote_response(vote: VoteRecord) -> VoteResponse:
    return VoteResponse(
        poll_id=vote.poll_id, candidate=vote.candidate, created_at=vote.created_at
    )


def _poll_response(
    db: DbClient, poll: PollRecord, viewer: Optional[AuthUser]
) -> PollResponse:
    votes = db.list_votes(poll.poll_id)
    result = tally(poll.teams, votes, voter_id=viewer.user_id if viewer else None)
    return PollResponse(
        **poll.as_dict(),
        entries=[
            RankedEntryResponse(
                rank=index + 1,
                candidate=entry.candidate,
                votes=entry.votes,
                percentage=entry.percentage,
            )
            for index, entry in enumerate(result.entries)
        ],
        total_votes=result.total_votes,
        has_voted=result.voter.has_voted,
        voted_for=result.voter.candidate,
    )


def _load_post(db: DbClient, post_id: str) -> PostRecord:
    post = db.get_post(post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


def _load_own_post(db: DbClient, post_id: str, user: AuthUser) -> PostRecord:
    post = _load_post(db, post_id)
    if post.user_id != user.user_id:
        raise HTTPException(status_code=403, detail="You can only change your own posts")
    return post


def _load_profile_by_handle(db: DbClient, handle: str) -> UserRecord:
    profile = db.find_user_by_handle(handle)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


async def _store_uploads(
    files: Iterable[UploadFile],
    storage: StorageClient,
    settings: Settings,
    *,
    prefix: str,
    allow_video: bool = True,
) -> list[str]:
    """Validate every file first, then upload them and return public URLs."""
    pending: list[tuple[str, bytes, str]] = []
    for upload in files:
        # Never buffer more than one byte past the limit.
        data = await upload.read(settings.max_upload_bytes + 1)
        try:
            content_type = validate_upload(
                upload.filename or "",
                upload.content_type,
                len(data),
                settings.max_upload_bytes,
                allow_video=allow_video,
            )
        except MediaRejected as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        pending.append((build_media_path(prefix, upload.filename or ""), data, content_type))

    urls = []
    for path, data, content_type in pending:
        storage.upload_bytes(path, data, content_type)
        urls.append(storage.public_url(path))
    return urls


def _delete_media(storage: StorageClient, urls: Iterable[str]) -> None:
    base_url = storage.public_url("")
    paths = [path for path in (path_from_public_url(url, base_url) for url in urls) if path]
    if paths:
        storage.delete(paths)
        logger.info("Deleted %d media objects", len(paths))


# --- Ungated ---------------------------------------------------------------


@public_router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@public_router.post("/gate", response_model=GateResponse)
def unlock_gate(
    payload: GateRequest,
    gate: GateKeeper = Depends(get_gate_keeper),
):
    """Exchange the site password for a gate token."""
    if not gate.enabled:
        return GateResponse(gate_token=None, expires_in=None)
    try:
        token = gate.unlock(payload.password)
    except GateLocked as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return GateResponse(gate_token=token, expires_in=gate.ttl_minutes * 60)


# --- Profiles --------------------------------------------------------------


@router.post("/me", response_model=ProfileResponse)
def create_my_profile(
    payload: CreateProfileRequest,
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    """
    Create the caller's profile on first sign-in. Calling it again returns the
    existing profile unchanged.
    """
    profile = db.upsert_user(user.user_id, user.email, _required_text(payload.name, "name"))
    return _profile_response(profile)


@router.get("/me", response_model=ProfileResponse)
def get_my_profile(
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    profile = db.get_user(user.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_response(profile)


@router.patch("/me", response_model=ProfileResponse)
def update_my_profile(
    payload: UpdateProfileRequest,
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    name = _required_text(payload.name, "name") if payload.name is not None else None
    profile = db.update_user(
        user.user_id,
        name=name,
        bio=payload.bio.strip() if payload.bio is not None else None,
        profile_pic_url=payload.profile_pic_url,
    )
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_response(profile)


@router.post("/me/avatar", response_model=ProfileResponse)
async def upload_my_avatar(
    file: UploadFile = File(...),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
    user: AuthUser = Depends(get_current_user),
):
    if not db.get_user(user.user_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    [url] = await _store_uploads(
        [file], storage, settings, prefix="profiles", allow_video=False
    )
    profile = db.update_user(user.user_id, profile_pic_url=url)
    return _profile_response(profile)


@router.get("/users/{handle}", response_model=PublicProfileResponse)
def get_profile(handle: str, db: DbClient = Depends(get_db_client)):
    profile = _load_profile_by_handle(db, handle)
    stats = ProfileStats(
        posts=db.count_posts(profile.user_id),
        comments=len(db.list_comments_by_user(profile.user_id)),
        votes=len(db.list_votes_by_user(profile.user_id)),
        likes_received=db.count_likes_received(profile.user_id),
    )
    return PublicProfileResponse(profile=_profile_response(profile), stats=stats)


@router.get("/users/{handle}/posts", response_model=ListPostsResponse)
def list_profile_posts(
    handle: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: DbClient = Depends(get_db_client),
    viewer: Optional[AuthUser] = Depends(get_optional_user),
):
    profile = _load_profile_by_handle(db, handle)
    posts = db.list_posts(limit=limit, offset=offset, author_id=profile.user_id)
    return ListPostsResponse(
        posts=[_post_response(db, post, viewer) for post in posts],
        limit=limit,
        offset=offset,
    )


@router.get("/users/{handle}/comments", response_model=ListCommentsResponse)
def list_profile_comments(handle: str, db: DbClient = Depends(get_db_client)):
    profile = _load_profile_by_handle(db, handle)
    comments = db.list_comments_by_user(profile.user_id)
    return ListCommentsResponse(comments=[_comment_response(c) for c in comments])


@router.get("/users/{handle}/votes", response_model=ListVotesResponse)
def list_profile_votes(handle: str, db: DbClient = Depends(get_db_client)):
    profile = _load_profile_by_handle(db, handle)
    votes = db.list_votes_by_user(profile.user_id)
    return ListVotesResponse(votes=[_vote_response(vote) for vote in votes])


# --- Posts -----------------------------------------------------------------


@router.get("/posts", response_model=ListPostsResponse)
def list_posts(
    tag: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: DbClient = Depends(get_db_client),
    viewer: Optional[AuthUser] = Depends(get_optional_user),
):
    posts = db.list_posts(limit=limit, offset=offset, tag=tag)
    return ListPostsResponse(
        posts=[_post_response(db, post, viewer) for post in posts],
        limit=limit,
        offset=offset,
    )


@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(
    post_id: str,
    db: DbClient = Depends(get_db_client),
    viewer: Optional[AuthUser] = Depends(get_optional_user),
):
    return _post_response(db, _load_post(db, post_id), viewer)


@router.post("/posts", response_model=PostResponse, status_code=201)
async def create_post(
    title: str = Form(...),
    content: str = Form(...),
    tags: list[str] | None = Form(None),
    files: list[UploadFile] | None = File(None),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
    user: AuthUser = Depends(get_current_user),
):
    title = _required_text(title, "title")
    content = _required_text(content, "content")
    media_urls = await _store_uploads(files or [], storage, settings, prefix="posts")
    post = db.create_post(
        user_id=user.user_id,
        email=user.email or "Unknown",
        title=title,
        content=content,
        tags=_clean_tags(tags or []),
        media_urls=media_urls,
    )
    logger.info("Post %s created by %s with %d media", post.post_id, user.user_id, len(media_urls))
    return _post_response(db, post, user)


@router.patch("/posts/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: str,
    title: str | None = Form(None),
    content: str | None = Form(None),
    tags: list[str] | None = Form(None),
    remove_media: list[str] | None = Form(None),
    files: list[UploadFile] | None = File(None),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
    user: AuthUser = Depends(get_current_user),
):
    """
    Edit a post. Omitted fields stay as they are; a single empty ``tags``
    value clears the tags. Media listed in ``remove_media`` is detached and
    deleted from storage after the post is saved.
    """
    post = _load_own_post(db, post_id, user)
    title = _required_text(title, "title") if title is not None else None
    content = _required_text(content, "content") if content is not None else None

    to_remove = set(remove_media or [])
    removed = [url for url in post.media_urls if url in to_remove]
    new_urls = await _store_uploads(files or [], storage, settings, prefix="posts")
    media_urls = [url for url in post.media_urls if url not in removed] + new_urls

    updated = db.update_post(
        post_id,
        title=title,
        content=content,
        tags=_clean_tags(tags) if tags is not None else None,
        media_urls=media_urls,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Post not found")
    _delete_media(storage, removed)
    return _post_response(db, updated, user)


@router.delete("/posts/{post_id}", response_model=DeletedResponse)
def delete_post(
    post_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    user: AuthUser = Depends(get_current_user),
):
    post = _load_own_post(db, post_id, user)
    db.delete_post(post_id)
    _delete_media(storage, post.media_urls)
    logger.info("Post %s deleted by %s", post_id, user.user_id)
    return DeletedResponse(status="deleted")


# --- Comments --------------------------------------------------------------


@router.get("/posts/{post_id}/comments", response_model=ListCommentsResponse)
def list_comments(post_id: str, db: DbClient = Depends(get_db_client)):
    _load_post(db, post_id)
    comments = db.list_comments(post_id)
    return ListCommentsResponse(comments=[_comment_response(c) for c in comments])


@router.post(
    "/posts/{post_id}/comments", response_model=CommentResponse, status_code=201
)
def add_comment(
    post_id: str,
    payload: CommentRequest,
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    _load_post(db, post_id)
    comment = db.add_comment(
        post_id,
        user.user_id,
        user.email or "Unknown",
        _required_text(payload.content, "content"),
    )
    return _comment_response(comment)


@router.delete("/comments/{comment_id}", response_model=DeletedResponse)
def delete_comment(
    comment_id: str,
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    comment = db.get_comment(comment_id)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    if comment.user_id != user.user_id:
        raise HTTPException(status_code=403, detail="You can only delete your own comments")
    db.delete_comment(comment_id)
    return DeletedResponse(status="deleted")


# --- Likes -----------------------------------------------------------------


def _like_summary(
    db: DbClient, post_id: str, viewer: Optional[AuthUser]
) -> LikeSummaryResponse:
    likes = db.list_likes(post_id)
    return LikeSummaryResponse(
        post_id=post_id,
        count=len(likes),
        liked_by_me=bool(viewer) and any(like.user_id == viewer.user_id for like in likes),
    )


@router.get("/posts/{post_id}/likes", response_model=LikeSummaryResponse)
def get_likes(
    post_id: str,
    db: DbClient = Depends(get_db_client),
    viewer: Optional[AuthUser] = Depends(get_optional_user),
):
    _load_post(db, post_id)
    return _like_summary(db, post_id, viewer)


@router.put("/posts/{post_id}/likes", response_model=LikeSummaryResponse)
def like_post(
    post_id: str,
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    _load_post(db, post_id)
    db.add_like(post_id, user.user_id)
    return _like_summary(db, post_id, user)


@router.delete("/posts/{post_id}/likes", response_model=LikeSummaryResponse)
def unlike_post(
    post_id: str,
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    _load_post(db, post_id)
    db.remove_like(post_id, user.user_id)
    return _like_summary(db, post_id, user)


# --- Polls -----------------------------------------------------------------


@router.get("/polls/active", response_model=PollResponse)
def get_active_poll(
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
    viewer: Optional[AuthUser] = Depends(get_optional_user),
):
    """
    Return the configured poll with its current ranking, creating the poll on
    first use.
    """
    poll = db.ensure_poll(
        settings.poll_slug,
        title=settings.poll_title,
        description=settings.poll_description,
        roster=settings.poll_roster,
    )
    return _poll_response(db, poll, viewer)


@router.get("/polls/{poll_id}", response_model=PollResponse)
def get_poll(
    poll_id: str,
    db: DbClient = Depends(get_db_client),
    viewer: Optional[AuthUser] = Depends(get_optional_user),
):
    poll = db.get_poll(poll_id)
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found")
    return _poll_response(db, poll, viewer)


@router.post("/polls/{poll_id}/votes", response_model=VoteResponse, status_code=201)
def cast_vote(
    poll_id: str,
    payload: VoteRequest,
    db: DbClient = Depends(get_db_client),
    user: AuthUser = Depends(get_current_user),
):
    poll = db.get_poll(poll_id)
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found")
    if not poll.is_active:
        raise HTTPException(status_code=400, detail="Poll is closed")
    if payload.candidate not in poll.teams:
        raise HTTPException(status_code=400, detail="Unknown team")

    try:
        vote = db.record_vote(
            poll_id, user.user_id, user.email or "Unknown", payload.candidate
        )
    except DuplicateVoteError as exc:
        logger.warning("Rejected duplicate vote: %s", exc)
        raise HTTPException(status_code=409, detail="You have already voted") from exc

    logger.info("Vote recorded in poll %s for %s", poll_id, payload.candidate)
    return _vote_response(vote)

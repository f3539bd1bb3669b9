"""Ride post routes: nearby search, CRUD, interest, match and cancel (writes require auth)."""
import logging
import math
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from kampusroute.config import settings
from kampusroute.deps import get_current_user, get_post_repository
from kampusroute.models.notification import NotificationType
from kampusroute.models.post import Post
from kampusroute.models.user import User
from kampusroute.schemas.post import (
    InterestRequest,
    InterestResponse,
    InterestedUserResponse,
    MatchRequest,
    MatchResponse,
    MessageResponse,
    NearbyPostResponse,
    PostCreate,
    PostResponse,
    PostUpdate,
    UserSummary,
)
from kampusroute.services.post_repository import PostRepository
from kampusroute.services.proximity import RankedPost, bounding_box_prefilter, rank_nearby

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


def _display_name(user: User | None) -> str:
    if user is None:
        return "A user"
    full = " ".join(part for part in (user.name, user.surname) if part)
    return full or "A user"


def _nearby_card(ranked: RankedPost) -> NearbyPostResponse:
    base = PostResponse.model_validate(ranked.post)
    return NearbyPostResponse(**base.model_dump(), min_distance=ranked.min_distance_km)


def _parse_coordinate(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Latitude and longitude must be numbers"
        )
    if not math.isfinite(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Latitude and longitude must be numbers"
        )
    return value


async def _get_post_or_404(repo: PostRepository, post_id: str) -> Post:
    post = await repo.get(post_id)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


@router.get("/nearby", response_model=list[NearbyPostResponse])
async def get_nearby_posts(
    latitude: str | None = None,
    longitude: str | None = None,
    university: str | None = None,
    faculty: str | None = None,
    repo: PostRepository = Depends(get_post_repository),
):
    """Active posts whose route passes within NEARBY_RADIUS_KM of the rider, closest first.
    university/faculty narrow the search only when both are given."""
    if not latitude or not longitude:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Latitude and longitude are required"
        )
    lat = _parse_coordinate(latitude)
    lng = _parse_coordinate(longitude)
    now = datetime.now(timezone.utc)
    posts = await repo.find_active(now, university=university, faculty=faculty)
    logger.debug("Nearby search: %d active posts", len(posts))
    radius = settings.NEARBY_RADIUS_KM
    prefilter = bounding_box_prefilter(radius) if settings.NEARBY_BBOX_PREFILTER else None
    ranked = rank_nearby(lat, lng, posts, radius_km=radius, prefilter=prefilter)
    return [_nearby_card(r) for r in ranked]


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(post_id: str, repo: PostRepository = Depends(get_post_repository)):
    return await _get_post_or_404(repo, post_id)


@router.get("", response_model=list[PostResponse])
async def list_posts(repo: PostRepository = Depends(get_post_repository)):
    """All posts, newest first."""
    return await repo.list_all()


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    body: PostCreate,
    repo: PostRepository = Depends(get_post_repository),
    current_user: User = Depends(get_current_user),
):
    """Offer a ride. The route is stored as a single JSON array."""
    post = await repo.create(current_user.id, body.to_repository_data())
    logger.info("User %s created post %s", current_user.id, post.id)
    return post


@router.put("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: str,
    body: PostUpdate,
    repo: PostRepository = Depends(get_post_repository),
    current_user: User = Depends(get_current_user),
):
    post = await _get_post_or_404(repo, post_id)
    if post.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your post")
    return await repo.update(post, body.to_repository_data())


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: str,
    repo: PostRepository = Depends(get_post_repository),
    current_user: User = Depends(get_current_user),
):
    post = await _get_post_or_404(repo, post_id)
    if post.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your post")
    await repo.delete(post)
    logger.info("User %s deleted post %s", current_user.id, post_id)
    return None


@router.post("/{post_id}/interested", response_model=InterestResponse, status_code=status.HTTP_201_CREATED)
async def add_interested_user(
    post_id: str,
    body: InterestRequest,
    repo: PostRepository = Depends(get_post_repository),
    current_user: User = Depends(get_current_user),
):
    """Rider asks to join a ride. Notifies the driver."""
    post = await _get_post_or_404(repo, post_id)
    location = body.location_coordinates.to_point() if body.location_coordinates else None
    try:
        entry = await repo.add_interest(post, current_user.id, location)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await repo.notify(
        post.user_id,
        NotificationType.MATCH,
        "New interested rider!",
        f"{_display_name(current_user)} is interested in your route.",
        post_id=post.id,
    )
    return InterestResponse(
        message="User added to interested list",
        user_post=InterestedUserResponse.model_validate(entry),
    )


@router.post("/{post_id}/match", response_model=MatchResponse)
async def match_user(
    post_id: str,
    body: MatchRequest,
    repo: PostRepository = Depends(get_post_repository),
    current_user: User = Depends(get_current_user),
):
    """Driver accepts a rider for this post. Notifies both sides."""
    post = await _get_post_or_404(repo, post_id)
    if post.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your post")
    matched_user = await repo.get_user(body.matched_user_id)
    if not matched_user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    try:
        post = await repo.match(post, matched_user.id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await repo.notify(
        matched_user.id,
        NotificationType.MATCH,
        "Ride match confirmed!",
        f"{_display_name(current_user)} agreed to share the ride with you.",
        post_id=post.id,
    )
    await repo.notify(
        current_user.id,
        NotificationType.MATCH,
        "Rider match completed",
        f"Your ride match with {_display_name(matched_user)} is complete.",
        post_id=post.id,
    )
    return MatchResponse(
        post=PostResponse.model_validate(post),
        matched_user=UserSummary.model_validate(matched_user),
    )


@router.post("/{post_id}/cancel-match", response_model=MessageResponse)
async def cancel_match(
    post_id: str,
    repo: PostRepository = Depends(get_post_repository),
    current_user: User = Depends(get_current_user),
):
    """Driver or matched rider drops the match. The other side is notified."""
    post = await _get_post_or_404(repo, post_id)
    is_driver = post.user_id == current_user.id
    if not is_driver and post.matched_user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to cancel this match")
    other_user_id = post.matched_user_id if is_driver else post.user_id
    await repo.cancel_match(post)
    if other_user_id:
        await repo.notify(
            other_user_id,
            NotificationType.RIDE,
            "Ride cancelled",
            f"{_display_name(current_user)} cancelled the ride match.",
            post_id=post.id,
        )
        await repo.notify(
            current_user.id,
            NotificationType.SYSTEM,
            "Ride cancelled",
            f"You cancelled the ride match for {post.source_address} - {post.destination_university}.",
            post_id=post.id,
        )
    return MessageResponse(message="Match cancelled successfully")

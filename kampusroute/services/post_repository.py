"""Data access for ride posts. One repository per request, bound to that request's session."""
import json
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kampusroute.models.notification import NotificationType
from kampusroute.models.post import InterestedUser, Post
from kampusroute.models.user import User
from kampusroute.services.notifications import create_notification
from kampusroute.services.proximity import GeoPoint, encode_route


def build_active_posts_query(
    now: datetime,
    university: str | None = None,
    faculty: str | None = None,
):
    """
    Posts that haven't fully elapsed (start or end still in the future), with owner and
    interested users loaded. Destination filters apply only when both are given.
    """
    q = (
        select(Post)
        .options(
            selectinload(Post.user),
            selectinload(Post.interested_users).selectinload(InterestedUser.user),
        )
        .where(or_(Post.datetime_start > now, Post.datetime_end > now))
    )
    if university and faculty:
        q = q.where(Post.destination_university == university).where(Post.destination_faculty == faculty)
    return q


def _point_json(point: GeoPoint | None) -> str | None:
    if point is None:
        return None
    return json.dumps({"latitude": point.latitude, "longitude": point.longitude})


class PostRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_active(
        self,
        now: datetime,
        university: str | None = None,
        faculty: str | None = None,
    ) -> list[Post]:
        result = await self.db.execute(build_active_posts_query(now, university, faculty))
        return list(result.scalars().all())

    async def get(self, post_id: str) -> Post | None:
        q = (
            select(Post)
            .options(
                selectinload(Post.user),
                selectinload(Post.interested_users).selectinload(InterestedUser.user),
            )
            .where(Post.id == post_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(q)
        return result.scalar_one_or_none()

    async def get_user(self, user_id: str) -> User | None:
        return await self.db.get(User, user_id)

    async def list_all(self) -> list[Post]:
        q = (
            select(Post)
            .options(
                selectinload(Post.user),
                selectinload(Post.interested_users).selectinload(InterestedUser.user),
            )
            .order_by(Post.created_at.desc())
        )
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def create(self, owner_id: str, data: dict[str, Any]) -> Post:
        """data keys: source_address, source_coordinates, destination_university,
        destination_faculty, route (list[GeoPoint]), datetime_start, datetime_end, price."""
        post = Post(user_id=owner_id)
        self._apply(post, data)
        self.db.add(post)
        await self.db.flush()
        return await self.get(post.id)

    async def update(self, post: Post, data: dict[str, Any]) -> Post:
        self._apply(post, data)
        await self.db.flush()
        return await self.get(post.id)

    async def delete(self, post: Post) -> None:
        await self.db.delete(post)
        await self.db.flush()

    async def add_interest(self, post: Post, user_id: str, location: GeoPoint | None) -> InterestedUser:
        """Register a rider's interest. Raises ValueError if already interested or the ride is full."""
        existing = await self.db.execute(
            select(InterestedUser.id)
            .where(InterestedUser.user_id == user_id)
            .where(InterestedUser.post_id == post.id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ValueError("User already interested in this post")
        if post.matched_user_id:
            raise ValueError("Ride is full (Seats not available)")
        entry = InterestedUser(user_id=user_id, post_id=post.id, location_coordinates=_point_json(location))
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)
        return entry

    async def match(self, post: Post, matched_user_id: str) -> Post:
        """Driver accepts a rider. Raises ValueError if the post already has a match."""
        if post.matched_user_id:
            raise ValueError("Ride is full (Seats not available)")
        post.matched_user_id = matched_user_id
        await self.db.flush()
        return await self.get(post.id)

    async def cancel_match(self, post: Post) -> str | None:
        """Clear the match. Returns the previously matched user id (None if there was none)."""
        previous = post.matched_user_id
        post.matched_user_id = None
        await self.db.flush()
        return previous

    async def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        post_id: str | None = None,
    ) -> None:
        await create_notification(self.db, user_id, type, title, message, related_id=post_id)

    @staticmethod
    def _apply(post: Post, data: dict[str, Any]) -> None:
        post.source_address = data["source_address"]
        post.source_coordinates = _point_json(data.get("source_coordinates"))
        post.destination_university = data["destination_university"]
        post.destination_faculty = data["destination_faculty"]
        post.route = encode_route(data["route"])
        post.datetime_start = data["datetime_start"]
        post.datetime_end = data["datetime_end"]
        post.price = data.get("price")

import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from kampusroute.deps import get_current_user, get_post_repository
from kampusroute.main import app
from kampusroute.models import InterestedUser, Post, User
from kampusroute.services.proximity import encode_route


class FakePostRepository:
    """In-memory stand-in for PostRepository, same async interface."""

    def __init__(self):
        self.posts: list[Post] = []
        self.users: dict[str, User] = {}
        self.notifications: list[dict] = []
        self.last_query: dict | None = None
        self.fail_with: Exception | None = None

    async def find_active(self, now, university=None, faculty=None):
        if self.fail_with:
            raise self.fail_with
        self.last_query = {"now": now, "university": university, "faculty": faculty}
        active = [p for p in self.posts if p.datetime_start > now or p.datetime_end > now]
        if university and faculty:
            active = [
                p for p in active
                if p.destination_university == university and p.destination_faculty == faculty
            ]
        return active

    async def get(self, post_id):
        return next((p for p in self.posts if p.id == post_id), None)

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def list_all(self):
        return list(reversed(self.posts))

    async def create(self, owner_id, data):
        post = Post(id=str(uuid.uuid4()), user_id=owner_id, user=self.users.get(owner_id))
        self._apply(post, data)
        self.posts.append(post)
        return post

    async def update(self, post, data):
        self._apply(post, data)
        return post

    async def delete(self, post):
        self.posts.remove(post)

    async def add_interest(self, post, user_id, location):
        if any(i.user_id == user_id for i in post.interested_users):
            raise ValueError("User already interested in this post")
        if post.matched_user_id:
            raise ValueError("Ride is full (Seats not available)")
        coords = json.dumps({"latitude": location.latitude, "longitude": location.longitude}) if location else None
        entry = InterestedUser(id=str(uuid.uuid4()), user_id=user_id, post_id=post.id, location_coordinates=coords)
        post.interested_users.append(entry)
        return entry

    async def match(self, post, matched_user_id):
        if post.matched_user_id:
            raise ValueError("Ride is full (Seats not available)")
        post.matched_user_id = matched_user_id
        return post

    async def cancel_match(self, post):
        previous = post.matched_user_id
        post.matched_user_id = None
        return previous

    async def notify(self, user_id, type, title, message, post_id=None):
        self.notifications.append({"user_id": user_id, "type": type, "title": title, "post_id": post_id})

    @staticmethod
    def _apply(post, data):
        post.source_address = data["source_address"]
        post.destination_university = data["destination_university"]
        post.destination_faculty = data["destination_faculty"]
        post.route = encode_route(data["route"])
        post.datetime_start = data["datetime_start"]
        post.datetime_end = data["datetime_end"]
        post.price = data.get("price")


def make_post(owner: User, route, university="Boğaziçi Üniversitesi", faculty="Mühendislik", hours=2, **kwargs) -> Post:
    """Build a detached Post. route may be a list of (lat, lng) pairs or the raw stored text."""
    if not isinstance(route, str):
        route = json.dumps(json.dumps([{"latitude": lat, "longitude": lng} for lat, lng in route]))
    now = datetime.now(timezone.utc)
    return Post(
        id=kwargs.pop("id", str(uuid.uuid4())),
        user_id=owner.id,
        user=owner,
        source_address=kwargs.pop("source_address", "Kadıköy"),
        destination_university=university,
        destination_faculty=faculty,
        route=route,
        datetime_start=kwargs.pop("datetime_start", now + timedelta(hours=hours)),
        datetime_end=kwargs.pop("datetime_end", now + timedelta(hours=hours + 1)),
        **kwargs,
    )


@pytest.fixture
def repo():
    fake = FakePostRepository()
    app.dependency_overrides[get_post_repository] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture
def client(repo):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def driver(repo):
    user = User(id="driver-1", email="driver@example.edu", name="Ayşe", surname="Yılmaz")
    repo.users[user.id] = user
    return user


@pytest.fixture
def rider(repo):
    user = User(id="rider-1", email="rider@example.edu", name="Mehmet", surname="Demir")
    repo.users[user.id] = user
    return user


@pytest.fixture
def login():
    def _login(user: User):
        app.dependency_overrides[get_current_user] = lambda: user
    return _login

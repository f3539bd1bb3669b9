"""Ride post offered by a driver, and the riders interested in it."""
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kampusroute.models.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    source_address: Mapped[str] = mapped_column(String(512), nullable=False)
    # JSON text: {"latitude": .., "longitude": ..}
    source_coordinates: Mapped[str | None] = mapped_column(Text, nullable=True)
    destination_university: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    destination_faculty: Mapped[str] = mapped_column(String(255), nullable=False)
    # JSON text of [{"latitude": .., "longitude": ..}, ...]; legacy rows are encoded twice
    route: Mapped[str] = mapped_column(Text, nullable=False)
    datetime_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    datetime_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    matched_user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", foreign_keys=[user_id], backref="posts")
    matched_user = relationship("User", foreign_keys=[matched_user_id], backref="matched_posts")
    interested_users = relationship(
        "InterestedUser",
        back_populates="post",
        cascade="all, delete-orphan",
        order_by="InterestedUser.created_at",
    )


class InterestedUser(Base):
    __tablename__ = "interested_users"
    __table_args__ = (UniqueConstraint("user_id", "post_id", name="uq_interested_user_post"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    # Rider's pickup point, JSON text
    location_coordinates: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    post = relationship("Post", back_populates="interested_users")
    user = relationship("User", backref="interested_in")

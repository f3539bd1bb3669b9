from kampusroute.models.base import Base
from kampusroute.models.notification import Notification, NotificationType
from kampusroute.models.post import InterestedUser, Post
from kampusroute.models.user import User

__all__ = ["Base", "User", "Post", "InterestedUser", "Notification", "NotificationType"]

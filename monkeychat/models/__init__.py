from monkeychat.models.base import Base
from monkeychat.models.user import User

__all__ = [
    "Base",
    "User",
]

from monkeychat.core.config import settings
from monkeychat.core.db import get_db

__all__ = ["settings", "get_db"]

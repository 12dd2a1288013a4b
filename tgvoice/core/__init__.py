from tgvoice.core.config import settings
from tgvoice.core.db import get_db

__all__ = ["settings", "get_db"]

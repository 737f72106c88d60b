from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware current UTC time for created_at / updated_at / played_at columns"""
    return datetime.now(timezone.utc)

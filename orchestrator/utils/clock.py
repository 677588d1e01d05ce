from datetime import datetime, timezone

def utcnow() -> datetime:
    """Timezone-aware now. All lease arithmetic happens in UTC."""
    return datetime.now(timezone.utc)

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.auth.security import require_api_key, require_cron_token
from orchestrator.db.session import get_db_session

# Dependency for DB session
DbSession = Annotated[AsyncSession, Depends(get_db_session)]

# Route-level guards
Privileged = Depends(require_api_key)
CronCaller = Depends(require_cron_token)

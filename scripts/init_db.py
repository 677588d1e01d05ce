#!/usr/bin/env python3
"""Creates the jobs, job_logs and job_results tables in the configured store."""
import asyncio
import logging

from orchestrator.db.session import create_tables, engine
from orchestrator.settings import settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("init_db")

async def main():
    await create_tables()
    await engine.dispose()
    logger.info("Tables created in %s", settings.SQLALCHEMY_DATABASE_URI.split("@")[-1])

if __name__ == "__main__":
    asyncio.run(main())

from sqlalchemy import select

from dietify.config import ConfigurationError
from dietify.memory.models import MemoryRecord
from dietify.models import UserMemory
from dietify.observability.logger import get_logger

log = get_logger("memory_store")


class MemoryStore:
    """Long-term facts about a user, namespaced by user id.

    Records are never expired here. Relevance is importance first, then the
    most recently written.
    """

    def __init__(self, session_factory):
        if session_factory is None:
            raise ConfigurationError("Memory store requires a session factory")
        self.session_factory = session_factory

    async def put(self, user_id: str, key: str, value: dict) -> MemoryRecord:
        async with self.session_factory() as session:
            row = await session.get(UserMemory, (user_id, key))
            if row is None:
                row = UserMemory(user_id=user_id, memory_id=key)
                session.add(row)
                created = True
            else:
                created = False
            row.content = value["content"]
            row.context = value.get("context", "")
            if "memory_type" in value:
                row.memory_type = value["memory_type"]
            if "importance" in value:
                row.importance = value["importance"]
            await session.commit()
            await session.refresh(row)
            log.info("memory_upserted", user_id=user_id, memory_id=key, created=created)
            return MemoryRecord.from_row(row)

    async def get(self, user_id: str, key: str) -> MemoryRecord | None:
        async with self.session_factory() as session:
            row = await session.get(UserMemory, (user_id, key))
            return MemoryRecord.from_row(row) if row else None

    async def search(self, user_id: str, limit: int = 10) -> list[MemoryRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserMemory)
                .where(UserMemory.user_id == user_id)
                .order_by(UserMemory.importance.desc(), UserMemory.updated_at.desc())
                .limit(limit)
            )
            return [MemoryRecord.from_row(row) for row in result.scalars().all()]

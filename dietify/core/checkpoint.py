from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from dietify.core.messages import dump_messages, load_messages
from dietify.core.state import AgentPhase, AgentState
from dietify.config import ConfigurationError
from dietify.models import Chat, CheckpointRecord
from dietify.observability.logger import get_logger

log = get_logger("checkpoint")


class ThreadOwnershipError(PermissionError):
    pass


class CheckpointStore:
    """Durable per-thread history.

    Each transition is one appended row holding only the messages it added,
    so a crash loses at most the in-flight step. Rows are never deleted here.
    """

    def __init__(self, session_factory):
        if session_factory is None:
            raise ConfigurationError("Checkpoint store requires a session factory")
        self.session_factory = session_factory

    async def ensure_thread(self, thread_id: str, user_id: str, title: str = "New Chat") -> bool:
        """Create the thread for ``user_id`` if absent. Returns True if created."""
        async with self.session_factory() as session:
            chat = await session.get(Chat, thread_id)
            if chat is None:
                session.add(Chat(id=thread_id, user_id=user_id, title=title))
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    chat = await session.get(Chat, thread_id)
                else:
                    log.info("thread_created", thread_id=thread_id, user_id=user_id)
                    return True
            if chat is None or chat.user_id != user_id:
                raise ThreadOwnershipError(f"Thread {thread_id} belongs to another user")
            return False

    async def owner(self, thread_id: str) -> str | None:
        async with self.session_factory() as session:
            chat = await session.get(Chat, thread_id)
            return chat.user_id if chat else None

    async def load(self, thread_id: str) -> AgentState | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CheckpointRecord)
                .where(CheckpointRecord.thread_id == thread_id)
                .order_by(CheckpointRecord.step.asc())
            )
            rows = result.scalars().all()
        if not rows:
            return None
        messages = []
        for row in rows:
            messages.extend(load_messages(row.messages))
        last = rows[-1]
        log.info("checkpoint_loaded", thread_id=thread_id, step=last.step, messages=len(messages))
        return AgentState(
            thread_id=thread_id,
            user_id=last.user_id,
            messages=messages,
            phase=AgentPhase(last.phase),
            step=last.step,
        )

    async def append(self, state: AgentState, new_messages: list) -> int:
        """Record a transition: the messages it added and the phase entered."""
        step = state.step + 1
        async with self.session_factory() as session:
            session.add(CheckpointRecord(
                thread_id=state.thread_id,
                user_id=state.user_id,
                step=step,
                phase=state.phase.value,
                messages=dump_messages(new_messages),
            ))
            await session.commit()
        state.step = step
        return step

from pydantic import BaseModel


class MemoryRecord(BaseModel):
    memory_id: str
    user_id: str
    content: str
    context: str = ""
    memory_type: str = "general"
    importance: int = 5
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row) -> "MemoryRecord":
        return cls(
            memory_id=row.memory_id,
            user_id=row.user_id,
            content=row.content,
            context=row.context or "",
            memory_type=row.memory_type,
            importance=row.importance,
            updated_at=row.updated_at.isoformat() if row.updated_at else None,
        )

    def value(self) -> dict:
        return {"content": self.content, "context": self.context}

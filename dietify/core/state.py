from dataclasses import dataclass, field
from enum import Enum


class AgentPhase(str, Enum):
    INVOKING = "invoking"
    DISPATCHING = "dispatching"
    DONE = "done"


@dataclass
class AgentState:
    """Everything a run needs to continue a thread: history plus position
    in the Invoking/Dispatching/Done cycle."""

    thread_id: str
    user_id: str
    messages: list = field(default_factory=list)
    phase: AgentPhase = AgentPhase.INVOKING
    step: int = 0  # last checkpointed step for the thread

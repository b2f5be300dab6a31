from potato_service.bridge.chunks import OutgoingChunk, ToolActivity, ToolPhase, Usage
from potato_service.bridge.contracts import ConversationTurn, TurnOutcome, TurnResult
from potato_service.bridge.coordinator import TurnCoordinator
from potato_service.bridge.registry import ProcessRegistry

__all__ = [
    "ConversationTurn",
    "OutgoingChunk",
    "ProcessRegistry",
    "ToolActivity",
    "ToolPhase",
    "TurnCoordinator",
    "TurnOutcome",
    "TurnResult",
    "Usage",
]

from rag_chat.execution.engine import TurnStage, WorkflowOrchestrator

__all__ = ["TurnStage", "WorkflowOrchestrator"]

"""Application ports package."""

from notebook_rag.application.ports.clock_port import ClockPort
from notebook_rag.application.ports.conversation_port import ConversationStorePort
from notebook_rag.application.ports.embedding_port import EmbeddingPort
from notebook_rag.application.ports.evidence_search_port import EvidenceSearchPort
from notebook_rag.application.ports.llm_port import ChatMessage, LLMPort, LLMResponse
from notebook_rag.application.ports.notebook_port import NotebookAccess, NotebookCatalogPort
from notebook_rag.application.ports.script_job_port import JobNotificationPort, ScriptJobStorePort
from notebook_rag.application.ports.skill_state_port import SkillStateStorePort
from notebook_rag.application.ports.telemetry_port import NoopTelemetry, TelemetryPort

__all__ = [
    "ClockPort",
    "ConversationStorePort",
    "EmbeddingPort",
    "EvidenceSearchPort",
    "LLMPort",
    "ChatMessage",
    "LLMResponse",
    "NotebookAccess",
    "NotebookCatalogPort",
    "JobNotificationPort",
    "ScriptJobStorePort",
    "SkillStateStorePort",
    "NoopTelemetry",
    "TelemetryPort",
]

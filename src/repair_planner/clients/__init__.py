"""Remote service clients used by the repair planner."""

from repair_planner.clients.base import BaseServiceClient
from repair_planner.clients.agent_service_client import AgentService, AgentServiceClient
from repair_planner.clients.document_store import (
    DocumentStore,
    HttpDocumentStore,
    InMemoryDocumentStore,
)

__all__ = [
    "BaseServiceClient",
    "AgentService",
    "AgentServiceClient",
    "DocumentStore",
    "HttpDocumentStore",
    "InMemoryDocumentStore",
]

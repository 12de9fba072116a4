"""Crisis Engine: escalation of at-risk students to human reviewers.

This engine:
1. Receives mood, chat and post events from producer services
2. Classifies them with the Safety Service risk classifier
3. Opens an escalation case when warranted
4. Serves the triage API used by counselors and admins

Endpoints:
- POST /events/mood, /events/chat, /events/post - producer hooks (always 202)
- POST /escalations - manual escalation
- GET /escalations, /escalations/stats, /escalations/<id> - triage views
- POST /escalations/<id>/{assign,actions,status,priority,severity,follow-up}
"""

from .store import (
    CaseFilter,
    CaseMutation,
    EscalationStore,
    InMemoryEscalationStore,
)
from .mongo_store import MongoEscalationStore
from .orchestrator import EscalationOrchestrator, ProducerEscalationHooks
from .auth import (
    AuthenticationError,
    AuthorizationError,
    Identity,
    Role,
    decode_identity,
    require_reviewer,
)
from .triage import TriageService
from .config import ServiceConfig, build_store

__all__ = [
    "CaseFilter",
    "CaseMutation",
    "EscalationStore",
    "InMemoryEscalationStore",
    "MongoEscalationStore",
    "EscalationOrchestrator",
    "ProducerEscalationHooks",
    "AuthenticationError",
    "AuthorizationError",
    "Identity",
    "Role",
    "decode_identity",
    "require_reviewer",
    "TriageService",
    "ServiceConfig",
    "build_store",
]

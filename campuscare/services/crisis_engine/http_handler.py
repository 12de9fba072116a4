"""Crisis Engine HTTP handler - escalation endpoints.

Producer endpoints (/events/*) are called by the mood, chat and community
services after they persist their own record. They always answer 202:
escalation failures are logged, never returned.

Reviewer endpoints (/escalations*) require a bearer JWT with a counselor
or admin role.

Flask views are synchronous; every async core call is submitted to one
BackgroundLoop shared by the app.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from campuscare.shared.database import NotFoundError, PersistenceError
from campuscare.shared.models import EscalationCase, ValidationError
from campuscare.shared.utils import BackgroundLoop, configure_pii_salt
from campuscare.services.safety_service import RiskClassifier, build_sentiment_provider
from .auth import (
    AuthenticationError,
    AuthorizationError,
    Identity,
    bearer_token,
    decode_identity,
    require_reviewer,
)
from .config import ServiceConfig, build_store
from .orchestrator import EscalationOrchestrator, ProducerEscalationHooks
from .store import EscalationStore
from .triage import TriageService

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30.0


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _required(data: Dict[str, Any], *names: str) -> None:
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def _int_arg(name: str, default: Optional[int]) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Query parameter {name} must be an integer, got {raw!r}")


def _parse_datetime(value: Any, field_name: str) -> datetime:
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be an ISO-8601 string")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 string, got {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def create_app(
    store: Optional[EscalationStore] = None,
    config: Optional[ServiceConfig] = None,
    classifier: Optional[RiskClassifier] = None,
) -> Flask:
    """Build the crisis engine Flask app.

    Args:
        store: Case store; chosen from config when omitted
        config: Service settings; read from the environment when omitted
        classifier: Risk classifier; built from the sentiment config when omitted
    """
    config = config or ServiceConfig.from_env()
    configure_pii_salt(config.pii_hash_salt)

    store = store or build_store(config)
    classifier = classifier or RiskClassifier(
        provider=build_sentiment_provider(config.sentiment)
    )
    orchestrator = EscalationOrchestrator(store, classifier)
    hooks = ProducerEscalationHooks(orchestrator)
    triage = TriageService(
        store,
        default_page_size=config.default_page_size,
        max_page_size=config.max_page_size,
    )
    loop = BackgroundLoop("crisis-engine-loop")

    app = Flask(__name__)
    app.config["ESCALATION_STORE"] = store
    app.config["BACKGROUND_LOOP"] = loop

    def run(coro):
        return loop.run(coro, timeout=REQUEST_TIMEOUT_SECONDS)

    def current_identity() -> Identity:
        if not config.jwt_secret_key:
            raise AuthenticationError("Token verification is not configured")
        token = bearer_token(request.headers.get("Authorization"))
        return decode_identity(token, config.jwt_secret_key, config.jwt_algorithm)

    def case_response(case: EscalationCase, identity: Identity, status_code: int = 200):
        return jsonify(case.to_dict(include_raw_text=identity.is_reviewer)), status_code

    # Error mapping

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(AuthenticationError)
    def handle_authentication_error(e):
        return jsonify({"error": str(e)}), 401

    @app.errorhandler(AuthorizationError)
    def handle_authorization_error(e):
        return jsonify({"error": str(e)}), 403

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(e):
        logger.error("ESCALATION_STORE_UNAVAILABLE", extra={"error": str(e)})
        return jsonify({"error": "Escalation store unavailable", "retryable": e.retryable}), 503

    # Health

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "service": "crisis-engine",
        }), 200

    @app.route("/ready", methods=["GET"])
    def ready():
        """Readiness check against the case store."""
        result = run(store.health_check())
        if not result.get("healthy"):
            return jsonify({"status": "not_ready", "store": result}), 503
        return jsonify({"status": "ready"}), 200

    # Producer hooks

    def accepted(case: Optional[EscalationCase]):
        return jsonify({
            "accepted": True,
            "escalated": case is not None,
            "case_id": case.id if case else None,
        }), 202

    @app.route("/events/mood", methods=["POST"])
    def mood_event():
        """Mood entry saved.

        Request Body:
            {
                "user_id": "stu_123",
                "mood_id": "mood_456",
                "mood_category": "very_sad",
                "intensity": 9,
                "notes": "optional free text"
            }
        """
        data = _json_body()
        case = run(hooks.on_mood_saved(
            user_id=data.get("user_id"),
            mood_id=data.get("mood_id"),
            mood_category=data.get("mood_category"),
            intensity=data.get("intensity"),
            notes=data.get("notes"),
        ))
        return accepted(case)

    @app.route("/events/chat", methods=["POST"])
    def chat_event():
        """Chat message sent. Body: {"user_id": ..., "message": ...}"""
        data = _json_body()
        case = run(hooks.on_chat_message(
            user_id=data.get("user_id"),
            message=data.get("message"),
        ))
        return accepted(case)

    @app.route("/events/post", methods=["POST"])
    def post_event():
        """Community post created. Body: {"user_id": ..., "post_id": ..., "content": ...}"""
        data = _json_body()
        case = run(hooks.on_post_created(
            user_id=data.get("user_id"),
            post_id=data.get("post_id"),
            content=data.get("content"),
        ))
        return accepted(case)

    # Reviewer endpoints

    @app.route("/escalations", methods=["POST"])
    def create_escalation():
        """Open a case by hand.

        Request Body:
            {
                "subject_user_id": "stu_123",
                "severity": "high",
                "description": "Reported by RA after floor meeting",
                "notes": "optional",
                "priority": 2
            }
        """
        identity = require_reviewer(current_identity())

        data = _json_body()
        _required(data, "subject_user_id", "severity", "description")

        case = run(orchestrator.escalate_manually(
            subject_user_id=data["subject_user_id"],
            severity=data["severity"],
            description=data["description"],
            reported_by=identity.user_id,
            notes=data.get("notes"),
            priority=data.get("priority", 3),
        ))
        return case_response(case, identity, 201)

    @app.route("/escalations", methods=["GET"])
    def list_escalations():
        """List cases.

        Query Params:
            status, severity, assigned_to: optional filters
            page: 1-based page number (default 1)
            limit: page size (default from config)
        """
        identity = current_identity()
        page = _int_arg("page", 1)
        page_size = _int_arg("limit", config.default_page_size)
        cases, total = run(triage.list_cases(
            identity,
            status=request.args.get("status"),
            severity=request.args.get("severity"),
            assigned_to=request.args.get("assigned_to"),
            page=page,
            page_size=page_size,
        ))
        return jsonify({
            "escalations": [case.to_dict(include_raw_text=identity.is_reviewer) for case in cases],
            "pagination": {
                "page": page,
                "limit": page_size,
                "total": total,
                "pages": (total + page_size - 1) // page_size,
            },
        }), 200

    @app.route("/escalations/stats", methods=["GET"])
    def escalation_stats():
        """Totals by status and severity. Query Params: days (default 30)"""
        identity = current_identity()
        summary = run(triage.summarize(identity, days=_int_arg("days", 30)))
        return jsonify(summary), 200

    @app.route("/escalations/<case_id>", methods=["GET"])
    def get_escalation(case_id: str):
        identity = current_identity()
        case = run(triage.get_case(identity, case_id))
        return case_response(case, identity)

    @app.route("/escalations/<case_id>/assign", methods=["POST"])
    def assign_escalation(case_id: str):
        """Body: {"assigned_to": "counselor_1"} or {"assigned_to": null} to clear."""
        identity = current_identity()
        data = _json_body()
        case = run(triage.assign(identity, case_id, data.get("assigned_to")))
        return case_response(case, identity)

    @app.route("/escalations/<case_id>/actions", methods=["POST"])
    def record_escalation_action(case_id: str):
        """Body: {"action_type": "contacted", "description": "...", "notes": "..."}"""
        identity = current_identity()
        data = _json_body()
        _required(data, "action_type", "description")
        case = run(triage.record_action(
            identity,
            case_id,
            action_type=data["action_type"],
            description=data["description"],
            notes=data.get("notes"),
        ))
        return case_response(case, identity)

    @app.route("/escalations/<case_id>/contacts", methods=["POST"])
    def add_escalation_contact(case_id: str):
        """Add an emergency contact.

        Request Body:
            {
                "name": "Jordan Lee",
                "relationship": "parent",
                "phone": "555-0100",
                "email": "optional, phone or email required"
            }
        """
        identity = current_identity()
        data = _json_body()
        _required(data, "name")
        case = run(triage.add_emergency_contact(
            identity,
            case_id,
            name=data["name"],
            relationship=data.get("relationship"),
            phone=data.get("phone"),
            email=data.get("email"),
        ))
        return case_response(case, identity, 201)

    @app.route("/escalations/<case_id>/contacts/<int:index>/contacted", methods=["POST"])
    def mark_escalation_contact(case_id: str, index: int):
        """Body (optional): {"notes": "..."}"""
        identity = current_identity()
        data = _json_body()
        case = run(triage.mark_contact_contacted(
            identity,
            case_id,
            contact_index=index,
            notes=data.get("notes"),
        ))
        return case_response(case, identity)

    @app.route("/escalations/<case_id>/status", methods=["POST"])
    def set_escalation_status(case_id: str):
        """Body: {"status": "resolved", "outcome": "...", "notes": "..."}"""
        identity = current_identity()
        data = _json_body()
        _required(data, "status")
        case = run(triage.set_status(
            identity,
            case_id,
            status=data["status"],
            notes=data.get("notes"),
            outcome=data.get("outcome"),
        ))
        return case_response(case, identity)

    @app.route("/escalations/<case_id>/priority", methods=["POST"])
    def set_escalation_priority(case_id: str):
        identity = current_identity()
        data = _json_body()
        _required(data, "priority")
        case = run(triage.set_priority(identity, case_id, data["priority"]))
        return case_response(case, identity)

    @app.route("/escalations/<case_id>/severity", methods=["POST"])
    def set_escalation_severity(case_id: str):
        identity = current_identity()
        data = _json_body()
        _required(data, "severity")
        case = run(triage.set_severity(identity, case_id, data["severity"]))
        return case_response(case, identity)

    @app.route("/escalations/<case_id>/follow-up", methods=["POST"])
    def schedule_escalation_follow_up(case_id: str):
        """Body: {"follow_up_date": "2026-11-02T15:00:00", "notes": "..."}"""
        identity = current_identity()
        data = _json_body()
        _required(data, "follow_up_date")
        case = run(triage.schedule_follow_up(
            identity,
            case_id,
            follow_up_date=_parse_datetime(data["follow_up_date"], "follow_up_date"),
            notes=data.get("notes"),
        ))
        return case_response(case, identity)

    logger.info(
        "CRISIS_ENGINE_APP_CREATED",
        extra={"store": type(store).__name__}
    )
    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8003"))
    app.run(host="0.0.0.0", port=port, debug=False)

"""SafeNight Flask app.

Run from project root:
    python app.py
"""

import asyncio
import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from flask import Flask, current_app, jsonify, request, session as flask_session

from safenight import config
from safenight.audit import format_receipt, AuditReceipt
from safenight.calculations import bac_color, format_bac, format_time_to_sober
from safenight.detector import detect
from safenight.drinks import list_drink_types
from safenight.errors import AlreadyActive, AuditSubmissionFailed, UnknownDrinkType
from safenight.profile import UserProfile
from safenight.service import SafetySession, SessionRegistry
from safenight.sos import TRIGGERS, compose_alert_message, sms_url

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["SECRET_KEY"] = config.secret_key()
app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
app.config["SESSION_COOKIE_HTTPONLY"] = True
app.config["SESSION_COOKIE_SECURE"] = os.environ.get("SESSION_COOKIE_SECURE", "0") == "1"
app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=30)

PROFILE_KEY = "profile"
REGISTRY_KEY = "safenight"
MAX_CURVE_HOURS = 24.0
MAX_DESCRIPTION_LEN = 200


def _registry() -> SessionRegistry:
    registry = current_app.extensions.get(REGISTRY_KEY)
    if registry is None:
        registry = SessionRegistry()
        current_app.extensions[REGISTRY_KEY] = registry
    return registry


def _current_profile() -> UserProfile | None:
    raw = flask_session.get(PROFILE_KEY)
    if not isinstance(raw, dict) or not raw.get("id"):
        return None
    return UserProfile.from_dict(raw)


def _safety_session() -> SafetySession | None:
    profile = _current_profile()
    if profile is None:
        return None
    session = _registry().get(profile.id)
    if session is None:
        # Process restarted while the cookie survived.
        session = _registry().open(profile)
    return session


def _setup_required_error():
    return jsonify({"error": "Set up your profile first"}), 401


def _empty_state() -> dict[str, Any]:
    return {
        "configured": False,
        "bac": 0,
        "bac_display": format_bac(0.0),
        "time_to_sober": 0,
        "time_to_sober_display": format_time_to_sober(0),
        "safety_level": "safe",
        "color": bac_color(0.0),
        "recommendation": None,
        "curve": [],
        "drink_count": 0,
        "sos": None,
    }


def _receipt_text(event) -> str:
    if not event.is_audited:
        return "Not logged to audit trail"
    return format_receipt(
        AuditReceipt(
            hash=event.audit_hash,
            signature=event.audit_signature,
            timestamp=event.created_at,
            slot=event.audit_slot or 0,
        )
    )


def _sos_payload(event) -> dict[str, Any]:
    data = event.to_dict()
    data["audit_receipt"] = _receipt_text(event)
    return data


@app.route("/healthz")
def healthz():
    return jsonify({"ok": True})


@app.route("/api/setup", methods=["POST"])
def api_setup():
    data = request.get_json() or {}
    existing = _current_profile()
    data["id"] = existing.id if existing else uuid.uuid4().hex
    profile = UserProfile.from_dict(data)

    flask_session.permanent = True
    flask_session[PROFILE_KEY] = profile.to_dict()
    _registry().open(profile)
    return jsonify({"ok": True, "profile": profile.to_dict()})


@app.route("/api/sign-out", methods=["POST"])
def api_sign_out():
    profile = _current_profile()
    if profile is not None:
        asyncio.run(_registry().close(profile.id))
    flask_session.pop(PROFILE_KEY, None)
    return jsonify({"ok": True})


@app.route("/api/drink-types")
def api_drink_types():
    return jsonify({"drink_types": list_drink_types()})


@app.route("/api/drink", methods=["POST"])
def api_drink():
    session = _safety_session()
    if session is None:
        return _setup_required_error()

    data = request.get_json() or {}
    plan_id = data.get("plan_id") or None
    description = str(data.get("description", "")).strip()[:MAX_DESCRIPTION_LEN]

    if description:
        event = asyncio.run(session.ledger.log_from_text(description, session.profile.id, plan_id))
    else:
        try:
            event = session.ledger.log_quick(str(data.get("drink_type", "beer")), session.profile.id, plan_id)
        except UnknownDrinkType as exc:
            return jsonify({"error": str(exc)}), 400

    return jsonify({"ok": True, "drink": event.to_dict(), "bac": session.ledger.current_bac.to_dict()})


@app.route("/api/drinks/today")
def api_drinks_today():
    session = _safety_session()
    if session is None:
        return _setup_required_error()
    return jsonify({"items": [e.to_dict() for e in session.ledger.today()]})


@app.route("/api/drink/<drink_id>", methods=["DELETE"])
def api_drink_delete(drink_id: str):
    session = _safety_session()
    if session is None:
        return _setup_required_error()
    removed = session.ledger.remove(drink_id)
    return jsonify({"ok": True, "removed": removed})


@app.route("/api/reset", methods=["POST"])
def api_reset():
    session = _safety_session()
    if session is not None:
        session.ledger.clear()
    return jsonify({"ok": True})


@app.route("/api/state")
def api_state():
    session = _safety_session()
    if session is None:
        return jsonify(_empty_state())

    now = datetime.now(timezone.utc)
    estimate = session.ledger.recalculate(now)
    events = session.ledger.events

    curve = []
    if events:
        start = min(e.logged_at for e in events)
        end = now + timedelta(minutes=estimate.time_to_sober + 30)
        end = min(end, start + timedelta(hours=MAX_CURVE_HOURS))
        curve = [{"t": t.isoformat(), "bac": bac} for t, bac in session.ledger.curve(start, end)]

    current = session.sos.current(session.profile.id)
    return jsonify({
        "configured": True,
        "profile": session.profile.to_dict(),
        **estimate.to_dict(),
        "bac_display": format_bac(estimate.bac),
        "time_to_sober_display": format_time_to_sober(estimate.time_to_sober),
        "color": bac_color(estimate.bac),
        "curve": curve,
        "drink_count": len(events),
        "sos": _sos_payload(current) if current else None,
    })


@app.route("/api/sos/trigger", methods=["POST"])
def api_sos_trigger():
    session = _safety_session()
    if session is None:
        return _setup_required_error()

    data = request.get_json() or {}
    trigger = str(data.get("trigger", "button"))
    if trigger not in TRIGGERS:
        return jsonify({"error": f"trigger must be one of {', '.join(TRIGGERS)}"}), 400

    try:
        event = asyncio.run(session.trigger_sos(trigger))
    except AlreadyActive as exc:
        return jsonify({"error": "SOS already active", "active_id": exc.active_id}), 409
    return jsonify({"ok": True, "sos": _sos_payload(event)})


@app.route("/api/sos/resolve", methods=["POST"])
def api_sos_resolve():
    session = _safety_session()
    if session is None:
        return _setup_required_error()

    data = request.get_json() or {}
    event_id = data.get("event_id")
    if event_id:
        event = session.sos.get(str(event_id))
        if event is not None and event.user_id != session.profile.id:
            event = None
        event = session.sos.resolve(event.id) if event else None
    else:
        event = session.resolve_sos()
    return jsonify({"ok": True, "sos": _sos_payload(event) if event else None})


@app.route("/api/sos/cancel", methods=["POST"])
def api_sos_cancel():
    session = _safety_session()
    if session is None:
        return _setup_required_error()
    event = session.cancel_sos()
    return jsonify({"ok": True, "sos": _sos_payload(event) if event else None})


@app.route("/api/sos/history")
def api_sos_history():
    session = _safety_session()
    if session is None:
        return _setup_required_error()
    return jsonify({"items": [_sos_payload(e) for e in session.sos.history(session.profile.id)]})


def _owned_event(session: SafetySession, event_id: str):
    event = session.sos.get(event_id)
    if event is None or event.user_id != session.profile.id:
        return None
    return event


@app.route("/api/sos/<event_id>/audit", methods=["POST"])
def api_sos_audit_retry(event_id: str):
    session = _safety_session()
    if session is None:
        return _setup_required_error()
    if _owned_event(session, event_id) is None:
        return jsonify({"error": "SOS event not found"}), 404

    try:
        event = asyncio.run(session.sos.retry_audit(event_id))
    except AuditSubmissionFailed as exc:
        logger.warning("Audit retry failed for %s: %s", event_id, exc)
        return jsonify({"error": "Audit log unavailable, try again"}), 502
    return jsonify({"ok": True, "sos": _sos_payload(event)})


@app.route("/api/sos/<event_id>/notify", methods=["POST"])
def api_sos_notify(event_id: str):
    session = _safety_session()
    if session is None:
        return _setup_required_error()
    event = _owned_event(session, event_id)
    if event is None:
        return jsonify({"error": "SOS event not found"}), 404

    sent = asyncio.run(session.sos.notify_again(event_id))
    message = compose_alert_message(event.location)
    links = [sms_url(c.phone, message) for c in session.profile.emergency_contacts]
    return jsonify({"ok": sent, "sms_links": links})


@app.route("/api/audit/verify/<signature>")
def api_audit_verify(signature: str):
    result = asyncio.run(_registry().audit_log.verify(signature))
    return jsonify({"verified": result.verified, "event": result.event})


@app.route("/api/checkin/missed", methods=["POST"])
def api_checkin_missed():
    session = _safety_session()
    if session is None:
        return _setup_required_error()

    data = request.get_json() or {}
    try:
        missed = int(data.get("missed_count"))
    except (TypeError, ValueError):
        return jsonify({"error": "missed_count must be an integer"}), 400

    event = asyncio.run(session.checkins.missed_checkin(missed))
    return jsonify({"ok": True, "escalated": event is not None, "sos": _sos_payload(event) if event else None})


@app.route("/api/checkin/ok", methods=["POST"])
def api_checkin_ok():
    session = _safety_session()
    if session is None:
        return _setup_required_error()
    session.checkins.checked_in()
    return jsonify({"ok": True})


@app.route("/api/code-word/detect", methods=["POST"])
def api_code_word_detect():
    session = _safety_session()
    if session is None:
        return _setup_required_error()

    data = request.get_json() or {}
    code_word = session.profile.sos_code_word
    if not code_word:
        return jsonify({"error": "No SOS code word set"}), 400

    detection = detect(str(data.get("transcript", "")), code_word)
    event = None
    if detection.detected:
        try:
            event = asyncio.run(session.trigger_sos("code_word"))
        except AlreadyActive:
            event = session.sos.current(session.profile.id)

    return jsonify({
        "detected": detection.detected,
        "confidence": detection.confidence,
        "matched_word": detection.matched_word,
        "sos": _sos_payload(event) if event else None,
    })


if __name__ == "__main__":
    logging.basicConfig(level=config.log_level(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG", "0") == "1")

"""Reading session start/end endpoints."""

from flask import Blueprint, g, request

from ...db.schemas import (
    SessionEndRequest,
    SessionEndResponse,
    SessionRequest,
    SessionStartResponse,
)
from ..guards import authenticate, bearer_token, dump, parse_body, reader_required, services

bp = Blueprint("reading_sessions", __name__, url_prefix="/api/reading-sessions")


@bp.route("/start", methods=["POST"])
@reader_required
def start_session():
    """Open a reading session, or return the one already open."""
    body = parse_body(SessionRequest)
    started = services().session_tracker.start_session(g.user.id, body.book_id)
    response = SessionStartResponse(
        success=True,
        message=started.message,
        session_id=started.session_id,
        start_time=started.start_time,
    )
    return dump(response), 201 if started.created else 200


@bp.route("/end", methods=["POST"])
def end_session():
    """Close the open session and credit its time.

    Accepts the token from the body when there is no Authorization header,
    so a page-unload beacon can end the session. Beacons are sent as
    text/plain, so the body is parsed as JSON regardless of content type.
    """
    data = request.get_json(silent=True, force=True)
    body_token = data.get("token") if isinstance(data, dict) else None
    if not isinstance(body_token, str):
        body_token = None
    user = authenticate(bearer_token() or body_token)
    body = parse_body(SessionEndRequest, force=True)

    ended = services().session_tracker.end_session(user.id, body.book_id)
    if not ended.success:
        return {"success": False, "message": ended.message}, 404

    response = SessionEndResponse(
        success=True,
        message=ended.message,
        session_id=ended.session_id,
        start_time=ended.start_time,
        end_time=ended.end_time,
        total_seconds=ended.total_seconds,
    )
    return dump(response)

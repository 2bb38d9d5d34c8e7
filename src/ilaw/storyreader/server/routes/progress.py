"""Progress endpoints and reading statistics."""

from flask import Blueprint, g, request
from werkzeug.exceptions import Forbidden

from ...db.schemas import ProgressResponse, ProgressUpdate, StatsResponse, UserRole
from ..guards import dump, login_required, parse_body, reader_required, roles_required, services

bp = Blueprint("progress", __name__)


@bp.route("/api/progress", methods=["POST"])
@reader_required
def post_progress():
    """Upsert the caller's (or, for staff, a student's) progress on a book."""
    body = parse_body(ProgressUpdate)
    user = g.user
    target_id = body.user_id if body.user_id is not None else user.id
    if target_id != user.id and user.is_student:
        raise Forbidden("Students can only update their own progress")

    progress, created = services().progress_tracker.record_progress(
        target_id,
        body.book_id,
        body.percent_complete,
        current_page=body.current_page,
    )
    response = {
        "success": True,
        "message": "Progress created successfully" if created else "Progress updated successfully",
        "progress": dump(ProgressResponse.model_validate(progress)),
    }
    return response, 201 if created else 200


@bp.route("/api/progress", methods=["GET"])
@login_required
def list_progress():
    """List progress rows the caller is allowed to see."""
    user = g.user
    student_id = request.args.get("studentId", type=int)
    rows = services().progress_tracker.list_progress(
        user, student_id=student_id if user.is_admin else None
    )
    return {
        "success": True,
        "progress": [dump(ProgressResponse.model_validate(row)) for row in rows],
    }


@bp.route("/api/stats", methods=["GET"])
@roles_required(UserRole.ADMIN, UserRole.TEACHER)
def reading_stats():
    """Platform-wide reading statistics for staff."""
    stats = services().progress_tracker.get_reading_stats()
    response = StatsResponse(
        total_sessions=stats.total_sessions,
        total_reading_seconds=stats.total_reading_seconds,
        avg_session_seconds=stats.avg_session_seconds,
        completion_rate=stats.completion_rate,
        book_completion_rate=stats.book_completion_rate,
        books_completed=stats.books_completed,
    )
    return {"success": True, **dump(response)}

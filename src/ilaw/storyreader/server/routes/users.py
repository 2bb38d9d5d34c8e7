"""Account endpoints."""

import logging

from flask import Blueprint, g

from ...db.sqlite import UserNotFoundError
from ..guards import login_required, services

logger = logging.getLogger(__name__)
bp = Blueprint("users", __name__, url_prefix="/api/user")


@bp.route("/account", methods=["DELETE"])
@login_required
def delete_account():
    """Delete the caller's account with their progress and sessions."""
    user = g.user
    if not services().db.delete_user(user.id):
        raise UserNotFoundError(f"User not found: {user.id}")
    logger.info("Deleted account %s (%s)", user.id, user.username)
    return {"success": True, "message": "Account deleted successfully"}

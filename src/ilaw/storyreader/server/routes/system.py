"""System settings and maintenance status endpoints."""

from flask import Blueprint, g

from ...db.schemas import UserRole
from ...settings.schemas import SystemSettingsUpdate
from ..guards import dump, parse_body, roles_required, services

bp = Blueprint("system", __name__)


@bp.route("/api/system/maintenance-status", methods=["GET"])
def maintenance_status():
    """Public check so the client can show a maintenance screen."""
    return {"success": True, "maintenanceMode": services().settings_manager.is_maintenance_mode()}


@bp.route("/api/admin/system-settings", methods=["GET"])
@roles_required(UserRole.ADMIN)
def get_system_settings():
    current = services().settings_manager.get_settings()
    return {"success": True, "settings": dump(current)}


@bp.route("/api/admin/system-settings", methods=["PUT"])
@roles_required(UserRole.ADMIN)
def update_system_settings():
    body = parse_body(SystemSettingsUpdate)
    updated = services().settings_manager.update_settings(body, updated_by=g.user.id)
    return {
        "success": True,
        "message": "System settings updated successfully",
        "settings": dump(updated),
    }

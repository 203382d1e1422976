"""
Map Routes - upload endpoint of the map vault
"""

import os

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required

from api_responses import error_response, success_response
from db import to_dict
from exceptions import UploadExtensionInvalid, UploadTooLarge
from services.map_service import MapService

maps_bp = Blueprint("maps", __name__, url_prefix="/api/maps")


def get_map_service():
    service = current_app.extensions.get("map_service")
    if service is None:
        service = MapService(current_app.config["APP_SETTINGS"]["map"])
        current_app.extensions["map_service"] = service
    return service


@maps_bp.route("/upload", methods=["POST"])
@login_required
def upload_map():
    """Upload a zipped map folder as a new map or a new version of an existing map"""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return error_response("VALIDATION_ERROR", message="Missing required parameter: file", status_code=400)

    map_settings = current_app.config["APP_SETTINGS"]["map"]
    allowed = map_settings["allowed_extensions"]
    extension = os.path.splitext(upload.filename)[1].lstrip(".").lower()
    if extension not in allowed:
        raise UploadExtensionInvalid(allowed)

    data = upload.read()
    if len(data) > map_settings["max_upload_size"]:
        raise UploadTooLarge(map_settings["max_upload_size"])

    version = get_map_service().upload_map(data, upload.filename, current_user._get_current_object())

    payload = to_dict(version)
    payload["display_name"] = version.map.display_name
    payload["create_time"] = payload["create_time"].isoformat() if payload["create_time"] else None
    return success_response(data=payload, message="Map uploaded", status_code=201)

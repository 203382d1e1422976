"""
Uploader identity. Players authenticate against the user service; this
module only resolves the session's player for the map endpoints.
"""
from flask_login import LoginManager
from api_responses import error_response
from repositories.player_repository import PlayerRepository
import logging

# Retrieve main logger
logger = logging.getLogger("main")

login_manager = LoginManager()


@login_manager.user_loader
def load_player(player_id):
    """Load player for Flask-Login"""
    try:
        return PlayerRepository.get_by_id(int(player_id))
    except (TypeError, ValueError):
        logger.warning(f"Invalid player id in session: {player_id!r}")
        return None


@login_manager.unauthorized_handler
def unauthorized_json():
    return error_response("UNAUTHORIZED", message="Authentication required", status_code=401)

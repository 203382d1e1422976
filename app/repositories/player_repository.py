"""
Repository for Player lookups
"""

from db import db
from models.player import Player


class PlayerRepository:
    """Read-only access to externally managed players"""

    @staticmethod
    def get_by_id(id):
        """Get Player by ID"""
        return db.session.get(Player, id)

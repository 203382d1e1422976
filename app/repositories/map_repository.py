"""
Repository for Map and MapVersion database operations
"""

from sqlalchemy.orm import selectinload
from db import db
from models.map import Map
from models.map_version import MapVersion


class MapRepository:
    """Repository for Map database operations"""

    @staticmethod
    def find_one_by_display_name(display_name):
        """Get Map by its display name, with versions loaded"""
        return (
            Map.query.options(selectinload(Map.versions))
            .filter(Map.display_name == display_name)
            .first()
        )

    @staticmethod
    def add_version(map_entity, map_data, author):
        """
        Create the Map when needed, append a MapVersion built from the frozen
        upload records and flush so storage constraints are checked. The
        surrounding transaction is left open for the caller to commit.
        """
        if map_entity is None:
            map_entity = Map(display_name=map_data.display_name)
            db.session.add(map_entity)

        map_entity.map_type = map_data.map_type
        map_entity.battle_type = map_data.battle_type
        map_entity.author = author

        version_data = map_data.version
        version = MapVersion(
            description=version_data.description,
            width=version_data.width,
            height=version_data.height,
            hidden=version_data.hidden,
            ranked=version_data.ranked,
            max_players=version_data.max_players,
            version=version_data.version,
            filename=version_data.filename,
        )
        map_entity.versions.append(version)
        db.session.flush()
        return version

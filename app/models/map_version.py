"""
Model: MapVersion
One published revision of a map. Rows are never updated after the upload.
"""

from db import db, now_utc


class MapVersion(db.Model):
    __tablename__ = "map_version"

    id = db.Column(db.Integer, primary_key=True)
    map_id = db.Column(db.Integer, db.ForeignKey("map.id", ondelete="CASCADE"), nullable=False)
    description = db.Column(db.Text)
    max_players = db.Column(db.Integer, nullable=False)
    width = db.Column(db.Integer, nullable=False)
    height = db.Column(db.Integer, nullable=False)
    version = db.Column(db.Integer, nullable=False)
    filename = db.Column(db.String(200), unique=True, nullable=False)
    hidden = db.Column(db.Boolean, default=False, nullable=False)
    ranked = db.Column(db.Boolean, default=False, nullable=False)
    create_time = db.Column(db.DateTime, default=now_utc, nullable=False)

    map = db.relationship("Map", back_populates="versions")

    __table_args__ = (
        db.UniqueConstraint("map_id", "version", name="uq_map_version_map_version"),
    )

    def __repr__(self):
        return f"<MapVersion {self.filename}>"

"""
Model: Map
"""

from db import db, now_utc


class Map(db.Model):
    __tablename__ = "map"

    id = db.Column(db.Integer, primary_key=True)
    # Unique so two authors racing to create the same map cannot both commit
    display_name = db.Column(db.String(100), unique=True, nullable=False)
    map_type = db.Column(db.String(15), nullable=False)
    battle_type = db.Column(db.String(15), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("login.id"), nullable=False, index=True)
    create_time = db.Column(db.DateTime, default=now_utc, nullable=False)
    update_time = db.Column(db.DateTime, default=now_utc, onupdate=now_utc, nullable=False)

    author = db.relationship("Player")
    versions = db.relationship(
        "MapVersion",
        back_populates="map",
        order_by="MapVersion.version",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Map {self.display_name}>"

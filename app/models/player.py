"""
Model: Player
Accounts are managed by the user service; this table is only read here.
"""

from db import db
from flask_login import UserMixin


class Player(UserMixin, db.Model):
    __tablename__ = "login"

    id = db.Column(db.Integer, primary_key=True)
    login = db.Column(db.String(100), unique=True, nullable=False)

    def __repr__(self):
        return f"<Player {self.login}>"

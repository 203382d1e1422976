from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event, inspect
import sqlite3
import logging
from utils import now_utc

# Retrieve main logger
logger = logging.getLogger("main")

db = SQLAlchemy()


def to_dict(db_results):
    return {c.name: getattr(db_results, c.name) for c in db_results.__table__.columns}


def init_db(app):
    # Register the models on the metadata before creating tables
    import models  # noqa: F401

    with app.app_context():
        # Ensure foreign keys and timeout are set when connection is opened
        @event.listens_for(db.engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            if not isinstance(dbapi_connection, sqlite3.Connection):
                return

            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            # Increase timeout to 30 seconds to handle concurrent uploads
            cursor.execute("PRAGMA busy_timeout=30000;")
            cursor.close()

        inspector = inspect(db.engine)
        if not inspector.has_table("map"):
            logger.info("Initializing database tables...")
        db.create_all()

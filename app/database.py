"""
Ignyt - Database Configuration
SQLAlchemy ORM setup (PostgreSQL in production, SQLite locally)
"""
import logging

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)


@event.listens_for(Engine, 'connect')
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on"""
    if type(dbapi_connection).__module__.startswith('sqlite3'):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def init_db(app):
    """Initialize database with app"""
    db.init_app(app)

    with app.app_context():
        # Import models to register them
        from app.models import db_models  # noqa

        db.create_all()

        logger.info("Database tables created")

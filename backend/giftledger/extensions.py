# Overview: Shared Flask extension instances (ORM session and Alembic migrations).

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Bound to the app in create_app(); services import `db` for the session.
db = SQLAlchemy()
migrate = Migrate(directory="migrations")

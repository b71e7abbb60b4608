"""
Persistence layer: SQLAlchemy models plus the DBStorage singleton.

The engine is bound lazily by ``storage.reload(url)``, which the application
factory calls with the configured DATABASE_URL.
"""
from models.db_storage import DBStorage

storage = DBStorage()

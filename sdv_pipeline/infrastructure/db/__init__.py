from .connection import DatabaseManager, database_manager

__all__ = ["DatabaseManager", "database_manager"]

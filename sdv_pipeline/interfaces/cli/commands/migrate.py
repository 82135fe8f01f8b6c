"""
Create or reset the database tables
"""

from .base import BaseCommand
from ....core.exceptions import DatabaseError
from ....infrastructure.db.connection import database_manager


class Command(BaseCommand):
    description = "Create database tables"

    def add_arguments(self, parser):
        parser.add_argument("--reset", action="store_true", help="Drop every table before creating them")
        parser.add_argument("--check", action="store_true", help="Only check the database connection")

    def handle(self, **kwargs):
        if kwargs.get("check"):
            if database_manager.health_check():
                self.print_success("Database is reachable")
                return 0
            self.print_error("Database is not reachable")
            return 1

        try:
            if kwargs.get("reset"):
                self.print_warning("Dropping all tables...")
                database_manager.drop_tables()
            self.print_info("Creating tables...")
            database_manager.create_tables()
        except DatabaseError as e:
            self.print_error(f"Migration failed: {e.message}")
            return 1

        self.print_success("Database tables are up to date")
        return 0

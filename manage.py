#!/usr/bin/env python3
"""
Management script for the SDV pipeline CLI commands

    python manage.py help
    python manage.py migrate
    python manage.py ingest exports/site_entry.csv --tenant acme --type site_data_entry
"""

import sys

from sdv_pipeline.interfaces.cli.main import main

if __name__ == "__main__":
    sys.exit(main())

"""
Start Celery workers and the beat scheduler
"""

from .base import BaseCommand

QUEUES = ("ingest", "merge", "maintenance")


class Command(BaseCommand):
    description = "Start a Celery worker (or beat) for the pipeline queues"

    def add_arguments(self, parser):
        parser.add_argument(
            "--queues", "-Q",
            default=",".join(QUEUES),
            help=f"Comma separated queues to consume (default: {','.join(QUEUES)})",
        )
        parser.add_argument("--concurrency", "-c", type=int, default=None, help="Worker processes")
        parser.add_argument("--loglevel", "-l", default="info")
        parser.add_argument("--beat", action="store_true", help="Run the beat scheduler instead of a worker")
        parser.add_argument("--dry-run", action="store_true", help="Print the Celery arguments and exit")

    def handle(self, **kwargs):
        unknown = [queue for queue in kwargs["queues"].split(",") if queue and queue not in QUEUES]
        if unknown:
            self.print_error(f"Unknown queues: {', '.join(unknown)}")
            return 1

        if kwargs["beat"]:
            argv = ["beat", f"--loglevel={kwargs['loglevel']}"]
        else:
            argv = ["worker", f"--queues={kwargs['queues']}", f"--loglevel={kwargs['loglevel']}"]
            if kwargs["concurrency"]:
                argv.append(f"--concurrency={kwargs['concurrency']}")

        if kwargs["dry_run"]:
            self.print_info("celery -A sdv_pipeline.worker " + " ".join(argv))
            return 0

        from ....worker import celery_app

        self.print_info(f"Starting {'beat' if kwargs['beat'] else 'worker'}...")
        celery_app.start(argv)
        return 0

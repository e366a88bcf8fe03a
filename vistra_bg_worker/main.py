from __future__ import annotations

import sys

from vistra_bg_worker.celery_app import celery_app
from vistra_bg_worker import email_worker  # noqa: F401  registers tasks
from vistra_bg_worker import recovery_worker  # noqa: F401  registers tasks
from vistra_bg_worker import subscriptions_worker  # noqa: F401  registers tasks
from vistra_bg_worker import whatsapp_worker  # noqa: F401  registers tasks


def main() -> None:
    argv = ["worker", "--loglevel=info"]
    if sys.platform == "win32":
        # prefork is not supported on Windows
        argv += ["-P", "solo"]
    if "--beat" in sys.argv:
        argv.append("--beat")
    celery_app.worker_main(argv)


if __name__ == "__main__":
    main()

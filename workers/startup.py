#!/usr/bin/env python
"""
Run the Ordino background worker.

    python -m workers.startup           # long-running, with the nightly crons
    python -m workers.startup --burst   # drain queued jobs once and exit

The arq CLI works too: arq workers.settings.WorkerSettings
"""

import sys

from arq import run_worker

from config.logging_config import setup_logging
from workers.settings import WorkerSettings


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    burst = "--burst" in argv

    logger = setup_logging(process="worker")
    logger.info(
        f"Starting worker ({'burst' if burst else 'continuous'}), "
        f"{len(WorkerSettings.functions)} job types, {len(WorkerSettings.cron_jobs)} cron jobs"
    )
    run_worker(WorkerSettings, burst=burst)


if __name__ == "__main__":
    main()

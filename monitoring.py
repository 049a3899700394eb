"""
monitoring.py — Logging setup for the Job Market Sync pipeline.
"""

import logging
import sys

from config import LOG_DIR, LOG_FILE


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Set up structured logging to both file and stdout.
    Returns the root logger for the application.
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("job_market_sync")
    logger.setLevel(level)

    # Prevent duplicate handlers on re-init
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    file_handler = logging.FileHandler(str(LOG_FILE), mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger for a specific module."""
    return logging.getLogger(f"job_market_sync.{name}")


def log_stage_success(logger: logging.Logger, stage: str, count: int, generation: int):
    """Log a stage that published its output."""
    logger.info(f"[{stage}] Published {count} records (generation {generation})")


def log_stage_failure(logger: logging.Logger, stage: str, error: Exception):
    """Log a stage that could not run at all."""
    logger.error(f"[{stage}] Stage failed: {type(error).__name__}: {str(error)}")


def log_batch_failures(logger: logging.Logger, stage: str, failures) -> None:
    """Log the per-item failures collected by a fan-out stage."""
    for failure in failures:
        logger.warning(
            f"[{stage}] Dropped {failure.key}: {type(failure.error).__name__}: {failure.error}"
        )


def log_snapshot_summary(logger: logging.Logger, state, duration: float):
    """Log a complete pipeline snapshot."""
    logger.info("=" * 60)
    logger.info("SNAPSHOT SUMMARY")
    logger.info(f"  Identity:          {state.identity.address or '(read-only)'}")
    logger.info(f"  Generation:        {state.generation}")
    logger.info(f"  Open jobs:         {len(state.all_jobs)}")
    logger.info(f"  Employer jobs:     {len(state.employer_job_details)}")
    logger.info(f"  Applicants:        {len(state.applicants)}")
    logger.info(f"  Worker jobs:       {len(state.worker_jobs)}")
    logger.info(f"  Disputes:          {len(state.disputes)} ({len(state.my_disputes)} mine)")
    logger.info(f"  Duration:          {duration:.1f}s")

    failures = [f for stage_failures in state.failures.values() for f in stage_failures]
    if failures:
        logger.warning(f"PARTIAL FAILURES: {len(failures)}")
        for stage, stage_failures in state.failures.items():
            for failure in stage_failures:
                logger.warning(f"  - [{stage}] {failure.key}: {failure.error}")

    logger.info("=" * 60)

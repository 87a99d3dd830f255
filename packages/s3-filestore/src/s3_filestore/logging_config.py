"""Process-wide logging setup for s3-filestore entry points such as scripts/smoke_test.py."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Transport libraries of both backends log every request at DEBUG
TRANSPORT_LOGGERS = (
    "botocore",
    "boto3",
    "s3transfer",
    "urllib3",
    "google.auth",
    "google.resumable_media",
)


def resolve_level(level: int | str) -> int:
    """Accept a logging level or its name ("debug", "INFO")."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger once per process; transport loggers stay at INFO or above."""
    numeric = resolve_level(level)
    logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.INFO))

"""
Centralized application configuration.

Edit the variables below to configure development settings.
"""

import logging

# =============================================================================
# DEVELOPMENT SETTINGS - Edit these for local development
# =============================================================================
LOG_LEVEL = "DEBUG"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_TO_CONSOLE = True  # Set to True to output logs to terminal
# =============================================================================

# =============================================================================
# BRIDGE SETTINGS
# =============================================================================
LOG_BUFFER_CAPACITY = 500  # Log entries kept for get_logs
EVENT_BUFFER_SIZE = 256  # Per-subscriber buffered events before dropping oldest
POLL_INTERVAL_MS = 1500  # Surface reconciliation interval
# =============================================================================

# =============================================================================
# DOWNLOAD QUEUE SETTINGS
# =============================================================================
TICK_INTERVAL_MS = 1000  # Download queue tick period
DEFAULT_SPEED_BYTES_PER_SEC = 8 * 1024 * 1024  # Seed for the throughput estimate
THROUGHPUT_SMOOTHING = 0.3  # Weight of the newest observation (0-1]
# =============================================================================


def get_log_level() -> int:
    """Get the logging level as an integer."""
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)

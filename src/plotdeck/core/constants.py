"""
plotdeck defaults.

Values consumed by the settings loader, the organizer and the batch runner. This
module is zero-IO and uses only the Python standard library.

Notes:
    - Changing a default here changes it for Settings, the CLI and the batch runner.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_HEARTBEAT_SECONDS",
    "DEFAULT_OUT_DIR",
    "LATEST_DIR",
    "ARTIFACT_SUFFIX",
    "DEFAULT_COLORSCALE",
    "WILDCARD_GROUP",
]

# Width of the batch worker pool.
DEFAULT_CONCURRENCY: int = 6

# Interval between "still generating" log lines for a single plot.
DEFAULT_HEARTBEAT_SECONDS: float = 60.0

DEFAULT_OUT_DIR: str = "out"

# Flat directory (under the output base) holding the most recent copy of every plot.
LATEST_DIR: str = "latest"

ARTIFACT_SUFFIX: str = ".json"

DEFAULT_COLORSCALE: str = "Viridis"

# Group value that fans a series definition out into one trace per distinct value.
WILDCARD_GROUP: str = "*"


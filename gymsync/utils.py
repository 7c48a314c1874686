"""Filesystem helpers for gymsync."""

import os
from pathlib import Path


def get_gymsync_home() -> Path:
    """Return the gymsync data directory.

    ``GYMSYNC_DATA_DIR`` overrides the default of ``~/.gymsync``.
    """
    override = os.environ.get("GYMSYNC_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".gymsync"

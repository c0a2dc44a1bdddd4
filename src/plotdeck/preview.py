"""Open a generated figure in a browser window using Plotly's HTML writer."""

from __future__ import annotations

import logging
import tempfile
import webbrowser
from pathlib import Path

import plotly.io as pio

from plotdeck.core.errors import PersistenceError
from plotdeck.engine.figure import Figure

__all__ = ["preview_html", "preview"]

logger = logging.getLogger(__name__)


def preview_html(fig: Figure) -> str:
    """Standalone HTML page rendering ``fig`` with plotly.js from the CDN."""
    return pio.to_html(
        fig.to_dict(),
        include_plotlyjs="cdn",
        full_html=True,
        validate=False,
        config=fig.config,
    )


def preview(fig: Figure) -> str:
    """
    Write ``fig`` to a temporary HTML file and open it in the default browser.

    Returns:
        str: Path of the written HTML file.

    Raises:
        PersistenceError: The HTML file cannot be written.
    """
    try:
        with tempfile.NamedTemporaryFile(
            "w", suffix=".html", prefix="plotdeck-", delete=False, encoding="utf-8"
        ) as fh:
            fh.write(preview_html(fig))
    except OSError as exc:
        raise PersistenceError(f"write preview: {exc}") from exc
    path = fh.name
    logger.info("opening preview %s", path)
    webbrowser.open(Path(path).as_uri())
    return path

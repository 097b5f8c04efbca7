"""
Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)`` and prefix messages
with a bracketed component tag, e.g. ``[Tracking]`` or ``[Worker]``.
"""

import logging

from dashboard_app.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = None) -> None:
    """Configure the root logger once; repeated calls only adjust the level."""
    level_name = (level or settings.log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level_name, format=LOG_FORMAT)
    root.setLevel(level_name)

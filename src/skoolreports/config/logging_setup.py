import logging
from typing import Optional

from skoolreports.config.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Attach one stream handler to the root logger; repeated calls only update the level."""
    name = (level or settings.log_level or "INFO").upper()
    resolved = getattr(logging, name, None)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger()
    root.setLevel(resolved)
    if not any(getattr(h, "_skoolreports", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._skoolreports = True  # type: ignore[attr-defined]
        root.addHandler(handler)

import logging

from pcapilot.core.config import settings


def configure_logging(level: str = None) -> None:
    """Root logging setup; called once when the app is built."""
    name = (level or settings.LOG_LEVEL).upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not isinstance(logging.getLevelName(name), int):
        logging.getLogger(__name__).warning(f"Unknown LOG_LEVEL {name!r}, using INFO")

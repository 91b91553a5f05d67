from .app.main import ingest, scan, get_package, list_threats

__all__ = [
    "ingest",
    "scan",
    "get_package",
    "list_threats",
]

# stdlib logging defaults: attach NullHandler to prevent 'No handler' warnings
import logging
_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())

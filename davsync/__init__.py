#!/usr/bin/env python
import logging

__version__ = "0.3.0"

from .sync import SyncOrchestrator
from .sync import SyncResult

## Silence notification of no default logging handler
log = logging.getLogger("davsync")


class NullHandler(logging.Handler):
    def emit(self, record) -> None:
        pass


log.addHandler(NullHandler())

__all__ = ["__version__", "SyncOrchestrator", "SyncResult"]

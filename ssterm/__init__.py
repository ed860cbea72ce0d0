"""Serial terminal with board identification, port filters and auto-reconnect."""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from __future__ import annotations

import logging

LOGGER = logging.getLogger("sessiongate")
APP_VERSION = "0.1.0"

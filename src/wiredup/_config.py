from __future__ import annotations

import logging
from dataclasses import dataclass


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class ContainerConfig:
    """Container options.

    - `log_level`: level for the `wiredup` logger ("debug", "info", "warning",
      "error"); left untouched when None.
    - `lazy_load`: when False, `build()` creates every singleton before returning.
    """

    log_level: str | None = None
    lazy_load: bool = False

    def __post_init__(self) -> None:
        if self.log_level is not None and self.log_level.lower() not in _LEVELS:
            msg = f"Unknown log level {self.log_level!r}. Expected one of: {', '.join(_LEVELS)}"
            raise ValueError(msg)

    def apply_logging(self) -> None:
        if self.log_level is None:
            return
        logging.getLogger(__package__).setLevel(_LEVELS[self.log_level.lower()])

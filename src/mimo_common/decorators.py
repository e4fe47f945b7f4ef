"""
Shared decorators for the MIMO installer.
"""

from __future__ import annotations

import functools
import logging
import os
import time
from typing import Callable

from .exceptions import PrivilegeError


def require_root(func: Callable) -> Callable:
    """
    Refuse to run ``func`` unless the process has an effective uid of 0.

    Raises:
        PrivilegeError: effective uid is not 0.
    """
    @functools.wraps(func)
    def checked(*args, **kwargs):
        euid = os.geteuid()
        if euid != 0:
            raise PrivilegeError(func.__name__)
        return func(*args, **kwargs)
    return checked


def timed(func: Callable) -> Callable:
    """Log the wall-clock duration of ``func`` at DEBUG, on the caller module's logger."""
    log = logging.getLogger(func.__module__)

    @functools.wraps(func)
    def measured(*args, **kwargs):
        started = time.monotonic()
        outcome = "failed"
        try:
            result = func(*args, **kwargs)
            outcome = "completed"
            return result
        finally:
            log.debug(f"{func.__name__} {outcome} in {time.monotonic() - started:.3f}s")
    return measured

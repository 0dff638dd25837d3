"""
Engine Configuration - Explicit context passed to every dataset
Holds the error channel, the output byte-order override, and the warning
switch that would otherwise be process globals.
"""

import os
import sys
from typing import Optional

from .constants import OUTPUT_ENDIANESS_ENV
from .error_channel import ErrorChannel


def host_byteorder() -> str:
    """Return 'little' or 'big'"""
    return sys.byteorder


def normalize_byteorder(value: Optional[str]) -> Optional[str]:
    """Map user spellings of a byte order to 'little' / 'big'"""
    if value is None:
        return None
    value = value.strip().lower()
    if value in ('little', 'little-endian', 'le', '<'):
        return 'little'
    if value in ('big', 'big-endian', 'be', '>'):
        return 'big'
    return None


class EngineContext:
    """Per-thread engine state"""

    def __init__(self, error_channel: Optional[ErrorChannel] = None,
                 output_byteorder: Optional[str] = None,
                 warnings_enabled: bool = True):
        self.error_channel = error_channel or ErrorChannel()
        self.output_byteorder = normalize_byteorder(output_byteorder)
        self.warnings_enabled = warnings_enabled
        self._saved_env: Optional[str] = None

    def capture_environment(self) -> None:
        """
        Capture SDDS_OUTPUT_ENDIANESS and remove it from the environment

        The value is read before it is removed so child processes never see
        a half-updated environment.
        """
        saved = os.environ.pop(OUTPUT_ENDIANESS_ENV, None)
        if saved is not None:
            self._saved_env = saved
            override = normalize_byteorder(saved)
            if override:
                self.output_byteorder = override

    def restore_environment(self) -> None:
        """Put back the variable removed by capture_environment"""
        if self._saved_env is not None:
            os.environ[OUTPUT_ENDIANESS_ENV] = self._saved_env
            self._saved_env = None


_default_context: Optional[EngineContext] = None


def default_context() -> EngineContext:
    """Return the process default context, creating it on first use"""
    global _default_context
    if _default_context is None:
        _default_context = EngineContext()
    return _default_context

"""
Logging Setup - Console logging for the command line tools
"""

import logging
import sys


def setup_logging(verbose: bool = False, warnings: bool = True, program: str = "sddsio") -> logging.Logger:
    """
    Attach a stderr handler to the package logger

    Args:
        verbose: Emit debug messages
        warnings: Emit warnings; False shows errors only
        program: Name printed in front of each message

    Returns:
        The package logger
    """
    logger = logging.getLogger("sddsio")
    for handler in list(logger.handlers):
        if getattr(handler, "_sddsio_console", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler._sddsio_console = True
    handler.setFormatter(logging.Formatter(f"{program}: %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    if verbose:
        logger.setLevel(logging.DEBUG)
    elif warnings:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.ERROR)
    return logger

"""
Component loggers for the simulator.

Every component logs through a named child of the ``twopc`` logger so
output can be filtered per component. Importing this module installs no
handlers; call ``log.configure()`` from an entry point.
"""

import logging
import sys
from typing import Dict, Optional, TextIO


VERBOSITY_LEVELS: Dict[int, Optional[int]] = {
    0: None,  # silent
    1: logging.CRITICAL,
    2: logging.ERROR,
    3: logging.WARNING,
    4: logging.INFO,
    5: logging.DEBUG,
}

LOG_FORMAT = '%(relativeCreated)10.1f - %(name)s - %(levelname)s - %(message)s'


class Log:
    """Holds one logger per simulator component."""

    def __init__(self, root_name: str = 'twopc'):
        self.root = logging.getLogger(root_name)
        self.network = logging.getLogger(f'{root_name}.network')
        self.participant = logging.getLogger(f'{root_name}.participant')
        self.coordinator = logging.getLogger(f'{root_name}.coordinator')
        self.runner = logging.getLogger(f'{root_name}.runner')
        self.scenario = logging.getLogger(f'{root_name}.scenario')
        self.study = logging.getLogger(f'{root_name}.study')
        self.cli = logging.getLogger(f'{root_name}.cli')
        self._handler: Optional[logging.Handler] = None

    def set_level(self, level: int):
        self.root.setLevel(level)

    def configure(self, verbosity: int = 3, stream: TextIO = None):
        """
        Install a single stream handler on the ``twopc`` logger.

        Verbosity follows VERBOSITY_LEVELS: 0 silences the simulator,
        5 traces every message. Calling this again replaces the handler.
        """
        if verbosity not in VERBOSITY_LEVELS:
            raise ValueError(f"Verbosity must be one of {sorted(VERBOSITY_LEVELS)}, got {verbosity}")

        self.reset()
        level = VERBOSITY_LEVELS[verbosity]
        if level is None:
            self.set_level(logging.CRITICAL + 1)
            return

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        self.root.addHandler(handler)
        self.set_level(level)
        self._handler = handler

    def reset(self):
        """Remove the installed handler and fall back to the parent's level."""
        if self._handler is not None:
            self.root.removeHandler(self._handler)
            self._handler = None
        self.set_level(logging.NOTSET)


log = Log()

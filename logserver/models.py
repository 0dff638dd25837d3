import logging
import os
import sys
import threading
import time
from pathlib import Path
from typing import List, Dict, Any, Optional

# Ensure src is in path
# this file is at PROJECT_ROOT/logserver/models.py
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root / 'src'))

import numpy as np

from sddsio.config import EngineContext
from sddsio.constants import BINARY, FLUSH_TABLE
from sddsio.dataset import Dataset
from sddsio.exceptions import (DuplicateDefinitionError, UnknownNameError, UsageError,
                               TypeMismatchError)
from sddsio.types.value import SDDSType, from_name, is_numeric, parse_scalar, name_of

logger = logging.getLogger(__name__)

CHANNEL_SUFFIX = '.sdds'
RESERVED_COLUMNS = ('SampleIDNumber', 'Time')
DEFAULT_ROOT = 'sddslog'


def _plain(values: np.ndarray) -> list:
    """Column data as JSON-friendly Python values"""
    if values.dtype == object:
        return [str(v) for v in values]
    return values.tolist()


class ChannelManager:
    """Channels are single-page binary SDDS files that grow one row per value"""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or os.environ.get('SDDSLOG_ROOT', DEFAULT_ROOT))
        self._lock = threading.Lock()

    def set_root(self, root: str) -> None:
        self.root = Path(root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _dataset(self) -> Dataset:
        # fresh error stack per operation
        return Dataset(EngineContext())

    def _directory(self, directory: Optional[str]) -> Path:
        """Resolve a directory relative to the root, refusing to leave it"""
        base = self.root.resolve()
        path = (base / (directory or '')).resolve()
        if path != base and base not in path.parents:
            raise UsageError(f"Directory {directory} is outside the log root")
        if not path.is_dir():
            raise UnknownNameError(f"Directory {directory} not found")
        return path

    @staticmethod
    def _check_name(name: str, what: str) -> None:
        if not name or '/' in name or '\\' in name or name.startswith('.'):
            raise UsageError(f"Invalid {what} name {name!r}")

    def _channel_path(self, name: str, directory: Optional[str]) -> Path:
        self._check_name(name, 'channel')
        return self._directory(directory) / f"{name}{CHANNEL_SUFFIX}"

    # --- Directories ---
    def list_directories(self, directory: Optional[str] = None) -> List[str]:
        path = self._directory(directory)
        return sorted(p.name for p in path.iterdir() if p.is_dir() and not p.name.startswith('.'))

    def make_directory(self, name: str, directory: Optional[str] = None) -> str:
        self._check_name(name, 'directory')
        path = self._directory(directory) / name
        if path.exists():
            raise DuplicateDefinitionError(f"Directory {name} already exists")
        path.mkdir()
        logger.info(f"Created directory {path}")
        return str(path.relative_to(self.root.resolve()))

    # --- Channels ---
    def _describe(self, path: Path) -> Dict[str, Any]:
        with self._dataset() as channel:
            channel.initialize_input(str(path))
            name = path.name[:-len(CHANNEL_SUFFIX)]
            if channel.get_column_index(name) < 0:
                raise UnknownNameError(f"{path.name} is not a channel file")
            definition = channel.get_column_definition(name)
            rows = channel.row_count if channel.read_page() > 0 else 0
            return {
                'name': name,
                'type': name_of(definition.type),
                'units': definition.units or '',
                'description': definition.description or '',
                'samples': rows,
            }

    def list_channels(self, directory: Optional[str] = None) -> List[Dict[str, Any]]:
        path = self._directory(directory)
        channels = []
        with self._lock:
            for candidate in sorted(path.glob(f"*{CHANNEL_SUFFIX}")):
                try:
                    channels.append(self._describe(candidate))
                except UnknownNameError:
                    logger.warning(f"Skipping {candidate.name}: no channel column")
        return channels

    def get_channel(self, name: str, directory: Optional[str] = None) -> Dict[str, Any]:
        path = self._channel_path(name, directory)
        if not path.exists():
            raise UnknownNameError(f"Channel {name} not found")
        with self._lock:
            return self._describe(path)

    def create_channel(self, name: str, type_name: str = 'double', units: str = '',
                       description: str = '', directory: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an empty channel file

        Raises:
            UsageError: Reserved name or unknown type
            DuplicateDefinitionError: The channel already exists
        """
        if name in RESERVED_COLUMNS:
            raise UsageError(f"{name} is a reserved column name")
        sdds_type = from_name(type_name or 'double')
        if sdds_type is None:
            raise UsageError(f"Unknown type {type_name}")
        path = self._channel_path(name, directory)
        with self._lock:
            if path.exists():
                raise DuplicateDefinitionError(f"Channel {name} already exists")
            with self._dataset() as channel:
                channel.initialize_output(BINARY, path=str(path))
                channel.define_simple_column('SampleIDNumber', type=SDDSType.LONG64)
                channel.define_simple_column('Time', units='s', type=SDDSType.DOUBLE)
                channel.define_column(name, units=units or None,
                                      description=description or None, type=sdds_type)
                channel.write_layout()
                channel.start_page(1)
                channel.write_page()
        logger.info(f"Created channel {name} ({name_of(sdds_type)}) in {path.parent}")
        return {'name': name, 'type': name_of(sdds_type), 'units': units or '',
                'description': description or '', 'samples': 0}

    def add_value(self, name: str, value: Any, directory: Optional[str] = None,
                  timestamp: Optional[float] = None) -> Dict[str, Any]:
        """
        Append one sample to a channel's page

        Returns:
            The new sample's id and time
        """
        path = self._channel_path(name, directory)
        if not path.exists():
            raise UnknownNameError(f"Channel {name} not found")
        when = time.time() if timestamp is None else float(timestamp)
        with self._lock:
            with self._dataset() as channel:
                rows = channel.initialize_append_to_page(str(path))
                sdds_type = channel.get_column_definition(name).type
                if isinstance(value, str) and is_numeric(sdds_type):
                    try:
                        value = parse_scalar(sdds_type, value)
                    except ValueError:
                        raise TypeMismatchError(f"{value!r} is not a valid {name_of(sdds_type)}")
                channel.lengthen_table(1)
                channel.set_row_values(rows, {'SampleIDNumber': rows, 'Time': when, name: value})
                channel.update_page(FLUSH_TABLE)
        return {'channel': name, 'sample_id': rows, 'time': when}

    def get_values(self, name: str, directory: Optional[str] = None,
                   start: Optional[float] = None, end: Optional[float] = None,
                   last: Optional[int] = None) -> Dict[str, Any]:
        """
        Samples of a channel, optionally limited to a time span and/or the last N

        Returns:
            Dict with SampleIDNumber, Time and the channel's values
        """
        path = self._channel_path(name, directory)
        if not path.exists():
            raise UnknownNameError(f"Channel {name} not found")
        with self._lock:
            with self._dataset() as channel:
                channel.initialize_input(str(path))
                definition = channel.get_column_definition(name)
                if channel.read_page() > 0 and channel.row_count:
                    ids = channel.get_column('SampleIDNumber')
                    times = channel.get_column('Time')
                    values = channel.get_column(name)
                else:
                    ids = np.zeros(0, dtype=np.int64)
                    times = np.zeros(0)
                    values = np.zeros(0, dtype=object)
        keep = np.ones(len(times), dtype=bool)
        if start is not None:
            keep &= times >= start
        if end is not None:
            keep &= times <= end
        ids, times, values = ids[keep], times[keep], values[keep]
        if last is not None:
            cut = max(len(ids) - last, 0)
            ids, times, values = ids[cut:], times[cut:], values[cut:]
        return {
            'channel': name,
            'units': definition.units or '',
            'SampleIDNumber': _plain(ids),
            'Time': _plain(times),
            'values': _plain(values),
        }


channel_manager = ChannelManager()

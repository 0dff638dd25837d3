"""
Layout Module - Parsed header schema of a dataset
"""

import copy
import logging
from typing import Dict, List, Optional, Union

from .schema import (ColumnDefinition, ParameterDefinition, ArrayDefinition,
                     AssociateDefinition, DataMode)
from ..types.value import SDDSType
from ..exceptions import DuplicateDefinitionError, UnknownNameError, StateError
from ..constants import SDDS_VERSION

logger = logging.getLogger(__name__)

Definition = Union[ColumnDefinition, ParameterDefinition, ArrayDefinition, AssociateDefinition]


class DefinitionList:
    """Ordered definitions with a name index"""

    def __init__(self, kind: str):
        self.kind = kind
        self._items: List[Definition] = []
        self._index: Dict[str, int] = {}

    def add(self, definition: Definition) -> int:
        if definition.name in self._index:
            raise DuplicateDefinitionError(
                f"{self.kind} {definition.name} already exists")
        self._items.append(definition)
        self._index[definition.name] = len(self._items) - 1
        return len(self._items) - 1

    def index(self, name: str) -> int:
        """Position of name, or -1 if absent"""
        return self._index.get(name, -1)

    def get(self, name: str) -> Definition:
        if name not in self._index:
            raise UnknownNameError(f"Unknown {self.kind} {name}")
        return self._items[self._index[name]]

    def names(self) -> List[str]:
        return [d.name for d in self._items]

    def __contains__(self, name):
        return name in self._index

    def __iter__(self):
        return iter(self._items)

    def __len__(self):
        return len(self._items)

    def __getitem__(self, i):
        return self._items[i]


class Layout:
    """Schema of a dataset: definitions, data mode and file-level text"""

    def __init__(self):
        self.description: Optional[str] = None
        self.contents: Optional[str] = None
        self.version = 1
        self.columns = DefinitionList('column')
        self.parameters = DefinitionList('parameter')
        self.arrays = DefinitionList('array')
        self.associates = DefinitionList('associate')
        self.data_mode = DataMode()
        self.unknown_directives: List[str] = []
        self.byteorder_declared: Optional[str] = None
        self.frozen = False

    # --------------------------------------------------------------------
    # Definition management
    # --------------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self.frozen:
            raise StateError("Layout already written; definitions are closed")

    def add_column(self, definition: ColumnDefinition) -> int:
        self._check_mutable()
        return self.columns.add(definition)

    def add_parameter(self, definition: ParameterDefinition) -> int:
        self._check_mutable()
        return self.parameters.add(definition)

    def add_array(self, definition: ArrayDefinition) -> int:
        self._check_mutable()
        return self.arrays.add(definition)

    def add_associate(self, definition: AssociateDefinition) -> int:
        self._check_mutable()
        return self.associates.add(definition)

    def compute_version(self) -> int:
        """Lowest format version able to represent this layout"""
        version = 1
        types = [d.type for d in self.columns] + [d.type for d in self.parameters] + \
            [d.type for d in self.arrays]
        if any(t in (SDDSType.USHORT, SDDSType.ULONG) for t in types):
            version = 2
        if any(t == SDDSType.LONGDOUBLE for t in types) or self.data_mode.column_major:
            version = 3
        if any(t in (SDDSType.LONG64, SDDSType.ULONG64) for t in types):
            version = 4
        return min(version, SDDS_VERSION)

    def copy(self) -> 'Layout':
        """Deep copy that is not frozen"""
        other = copy.deepcopy(self)
        other.frozen = False
        return other

    def matches(self, other: 'Layout') -> bool:
        """
        Check that two layouts define the same fields

        Returns:
            True if names and types agree in every class
        """
        for mine, theirs in ((self.columns, other.columns),
                             (self.parameters, other.parameters),
                             (self.arrays, other.arrays)):
            if len(mine) != len(theirs):
                return False
            for a, b in zip(mine, theirs):
                if a.name != b.name or a.type != b.type:
                    return False
        return True

    def summary(self) -> str:
        """Multi-line description used by sddsquery and the browser"""
        lines = []
        if self.description or self.contents:
            lines.append(f"description: {self.description or ''}")
            lines.append(f"contents: {self.contents or ''}")
        lines.append(f"data mode: {self.data_mode.mode_name}, "
                     f"{'column' if self.data_mode.column_major else 'row'} major, "
                     f"version {self.version}")
        for title, items in (('columns', self.columns), ('parameters', self.parameters),
                             ('arrays', self.arrays)):
            lines.append(f"{len(items)} {title}:")
            for d in items:
                units = f" [{d.units}]" if d.units else ""
                extra = ""
                if isinstance(d, ParameterDefinition) and d.is_fixed:
                    extra = f" = {d.fixed_value}"
                if isinstance(d, ArrayDefinition):
                    extra = f" dims={d.dimensions}"
                lines.append(f"  {d.name:<24} {d.type_name:<10}{units}{extra}")
        if len(self.associates):
            lines.append(f"{len(self.associates)} associates:")
            for a in self.associates:
                lines.append(f"  {a.name:<24} {a.filename or ''}")
        return "\n".join(lines)

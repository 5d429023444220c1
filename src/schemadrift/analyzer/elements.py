"""Schema elements, usage records and the schema mapping.

Elements are immutable snapshots. Usage is attached once, by
``attach_usage``, which merges per-file scan results into a fresh mapping;
no stage mutates a mapping it receives.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ..errors import CrossReferenceError
from .classify import CONFIDENCE_TIERS, best_confidence

ELEMENT_TYPES = ('table', 'column', 'index', 'enum')

# (element type, element name); names are unique within a type
ElementKey = Tuple[str, str]


@dataclass(frozen=True)
class UsageInfo:
    """A single matched reference to a schema element."""
    file: str
    line: int
    column: int
    operation: str
    context: str
    confidence: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file': self.file,
            'line': self.line,
            'column': self.column,
            'operation': self.operation,
            'context': self.context,
            'confidence': self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UsageInfo':
        return cls(**data)


@dataclass(frozen=True)
class SchemaElement:
    """A declared table, column, index or enum.

    Column names are ``table.column`` compound keys. ``metadata`` holds
    JSON-native values only (lists, not tuples) so that serialization is
    lossless.
    """
    name: str
    type: str
    definition_text: str
    file: str
    line: int
    dependencies: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)
    usage: Tuple[UsageInfo, ...] = ()

    @property
    def key(self) -> ElementKey:
        return (self.type, self.name)

    @property
    def is_used(self) -> bool:
        return bool(self.usage)

    @property
    def best_confidence(self) -> Optional[str]:
        return best_confidence(u.confidence for u in self.usage)

    @property
    def bare_name(self) -> str:
        """Name as written in code: the column part of a compound key."""
        if self.type == 'column':
            return self.metadata.get('column_name', self.name.rsplit('.', 1)[-1])
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.type,
            'definition_text': self.definition_text,
            'file': self.file,
            'line': self.line,
            'dependencies': list(self.dependencies),
            'metadata': self.metadata,
            'usage': [u.to_dict() for u in self.usage],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SchemaElement':
        return cls(
            name=data['name'],
            type=data['type'],
            definition_text=data['definition_text'],
            file=data['file'],
            line=data['line'],
            dependencies=tuple(data.get('dependencies', ())),
            metadata=dict(data.get('metadata', {})),
            usage=tuple(UsageInfo.from_dict(u) for u in data.get('usage', ())),
        )


@dataclass
class SchemaMapping:
    """All declared elements, one map per element type, keyed by name."""
    tables: Dict[str, SchemaElement] = field(default_factory=dict)
    columns: Dict[str, SchemaElement] = field(default_factory=dict)
    indexes: Dict[str, SchemaElement] = field(default_factory=dict)
    enums: Dict[str, SchemaElement] = field(default_factory=dict)
    schema_files: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def by_type(self, element_type: str) -> Dict[str, SchemaElement]:
        return {
            'table': self.tables,
            'column': self.columns,
            'index': self.indexes,
            'enum': self.enums,
        }[element_type]

    def elements(self) -> Iterator[SchemaElement]:
        """All elements in a stable order: tables, columns, indexes, enums."""
        for element_type in ELEMENT_TYPES:
            yield from self.by_type(element_type).values()

    def get(self, key: ElementKey) -> Optional[SchemaElement]:
        element_type, name = key
        if element_type not in ELEMENT_TYPES:
            return None
        return self.by_type(element_type).get(name)

    def __contains__(self, key: ElementKey) -> bool:
        return self.get(key) is not None

    @property
    def summary(self) -> Dict[str, Any]:
        elements = list(self.elements())
        used = [e for e in elements if e.is_used]
        usage_by_confidence = {tier: 0 for tier in CONFIDENCE_TIERS}
        for element in elements:
            for usage in element.usage:
                usage_by_confidence[usage.confidence] += 1
        return {
            'total_elements': len(elements),
            'tables': len(self.tables),
            'columns': len(self.columns),
            'indexes': len(self.indexes),
            'enums': len(self.enums),
            'used_elements': len(used),
            'unused_elements': len(elements) - len(used),
            'total_usages': sum(usage_by_confidence.values()),
            'usage_by_confidence': usage_by_confidence,
            'schema_files': len(self.schema_files),
            'warnings': len(self.warnings),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary,
            'tables': {k: v.to_dict() for k, v in self.tables.items()},
            'columns': {k: v.to_dict() for k, v in self.columns.items()},
            'indexes': {k: v.to_dict() for k, v in self.indexes.items()},
            'enums': {k: v.to_dict() for k, v in self.enums.items()},
            'schema_files': list(self.schema_files),
            'warnings': list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SchemaMapping':
        def load(section: str) -> Dict[str, SchemaElement]:
            return {k: SchemaElement.from_dict(v) for k, v in data.get(section, {}).items()}

        return cls(
            tables=load('tables'),
            columns=load('columns'),
            indexes=load('indexes'),
            enums=load('enums'),
            schema_files=list(data.get('schema_files', [])),
            warnings=list(data.get('warnings', [])),
        )


def attach_usage(
    mapping: SchemaMapping,
    pairs: Iterable[Tuple[ElementKey, UsageInfo]],
    warnings: Iterable[str] = (),
) -> SchemaMapping:
    """Reduce (element key, usage) pairs into a new mapping.

    This is the single place usage is accumulated. The input mapping is left
    untouched; elements in the result carry their usage in pair order, after
    any usage they already had.

    Args:
        mapping: Mapping produced by schema extraction
        pairs: Usage pairs from per-file scans, in file order
        warnings: Extra warnings to append to the result

    Returns:
        New SchemaMapping with usage attached

    Raises:
        CrossReferenceError: If a pair names an element the mapping lacks
    """
    index: Dict[ElementKey, List[UsageInfo]] = {}
    for key, usage in pairs:
        if key not in mapping:
            raise CrossReferenceError.unknown_element(f"{key[0]}:{key[1]}", usage.file)
        index.setdefault(key, []).append(usage)

    def rebuild(elements: Dict[str, SchemaElement]) -> Dict[str, SchemaElement]:
        rebuilt = {}
        for name, element in elements.items():
            extra = index.get(element.key)
            rebuilt[name] = replace(element, usage=element.usage + tuple(extra)) if extra else element
        return rebuilt

    return SchemaMapping(
        tables=rebuild(mapping.tables),
        columns=rebuild(mapping.columns),
        indexes=rebuild(mapping.indexes),
        enums=rebuild(mapping.enums),
        schema_files=list(mapping.schema_files),
        warnings=list(mapping.warnings) + list(warnings),
    )

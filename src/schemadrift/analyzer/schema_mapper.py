"""Schema extraction from Drizzle-style declaration files and usage correlation.

Recognized declarations (constructor names are configurable)::

    export const status = pgEnum("status", ["open", "closed"]);
    export const orders = pgTable("orders", {
        id: uuid("id").primaryKey().defaultRandom(),
        status: status("status"),
        userId: uuid("user_id").references(() => users.id),
    }, (table) => ({
        statusIdx: index("idx_status").on(table.status),
    }));
"""
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from tree_sitter import Node

from ..config import (
    DEFAULT_ENUM_CONSTRUCTORS,
    DEFAULT_INDEX_CONSTRUCTORS,
    DEFAULT_TABLE_CONSTRUCTORS,
    Config,
)
from ..errors import SyntaxParseError
from ..utils.logger import get_logger
from .discovery import discover_files, relative_name
from .elements import SchemaElement, SchemaMapping, attach_usage
from .extractor import (
    call_arguments,
    callee_of,
    first_string_argument,
    iter_nodes,
    literal_text,
    location_of,
    node_text,
)
from .parser import ParseResult, parse_path
from .references import ElementCatalog, scan_corpus

logger = get_logger(__name__)

DEFAULT_METHODS = {'default', 'defaultNow', 'defaultRandom', '$default', '$defaultFn'}


@dataclass
class _FileDeclarations:
    tables: List[SchemaElement] = field(default_factory=list)
    columns: List[SchemaElement] = field(default_factory=list)
    indexes: List[SchemaElement] = field(default_factory=list)
    enums: List[SchemaElement] = field(default_factory=list)
    # (start_byte, end_byte) of each table declaration statement -> table name
    table_spans: Dict[tuple, str] = field(default_factory=dict)


class SchemaMapper:
    """Extract schema elements and correlate them with the source corpus."""

    def __init__(
        self,
        project_root: str | Path = ".",
        table_constructors: Optional[Iterable[str]] = None,
        enum_constructors: Optional[Iterable[str]] = None,
        index_constructors: Optional[Iterable[str]] = None,
        max_workers: int = 1,
    ):
        """Initialize mapper.

        Args:
            project_root: Root that reported file names are relative to
            table_constructors: Callee names declaring tables
            enum_constructors: Callee names declaring enums
            index_constructors: Callee names declaring indexes
            max_workers: Thread count for the usage pass
        """
        self.project_root = Path(project_root).resolve()
        self.table_constructors = set(table_constructors or DEFAULT_TABLE_CONSTRUCTORS)
        self.enum_constructors = set(enum_constructors or DEFAULT_ENUM_CONSTRUCTORS)
        self.index_constructors = set(index_constructors or DEFAULT_INDEX_CONSTRUCTORS)
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config: Config) -> 'SchemaMapper':
        return cls(
            config.project_root,
            table_constructors=config.table_constructors,
            enum_constructors=config.enum_constructors,
            index_constructors=config.index_constructors,
            max_workers=config.max_workers,
        )

    def map_project(self, config: Config) -> SchemaMapping:
        """Discover schema and source files from config globs and build the mapping.

        Schema files are excluded from the source corpus.
        """
        schema_files = discover_files(config.project_root, config.schema_patterns)
        schema_set = set(schema_files)
        source_files = [
            p for p in discover_files(config.project_root, config.source_patterns)
            if p not in schema_set
        ]
        mapping = self.extract_schema(schema_files)
        return self.correlate_usage(mapping, source_files)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_schema(self, schema_files: Sequence[str | Path]) -> SchemaMapping:
        """Build the four element maps from schema declaration files.

        Unreadable or malformed files are skipped with a warning. No schema
        files at all yields an empty mapping with a warning.

        Args:
            schema_files: Declaration files, processed in the given order

        Returns:
            SchemaMapping without usage
        """
        mapping = SchemaMapping()
        if not schema_files:
            logger.warning("no_schema_files", root=str(self.project_root))
            mapping.warnings.append("No schema files matched the configured patterns")
            return mapping

        for path in schema_files:
            path = Path(path)
            label = relative_name(self.project_root, path)
            try:
                result = parse_path(path)
            except SyntaxParseError as e:
                logger.warning("schema_file_skipped", path=label, reason=e.message, code=e.error_name)
                mapping.warnings.append(f"Skipped {label}: {e.message}")
                continue

            mapping.schema_files.append(label)
            declarations = self._extract_file(result, label)
            rejected = {t.name for t in declarations.tables if not self._add_element(mapping, t)}
            for element in declarations.columns + declarations.indexes + declarations.enums:
                if element.metadata.get('table_name') in rejected:
                    continue
                self._add_element(mapping, element)

            if not declarations.tables:
                logger.debug("schema_file_without_tables", path=label)

        return self._link_enum_columns(mapping)

    def _add_element(self, mapping: SchemaMapping, element: SchemaElement) -> bool:
        """Add an element unless its name is taken; returns whether it was added."""
        elements = mapping.by_type(element.type)
        if element.name in elements:
            first = elements[element.name]
            logger.warning(
                "duplicate_element",
                type=element.type,
                name=element.name,
                first=f"{first.file}:{first.line}",
                duplicate=f"{element.file}:{element.line}",
            )
            mapping.warnings.append(
                f"Duplicate {element.type} '{element.name}' at {element.file}:{element.line} "
                f"(first declared at {first.file}:{first.line})"
            )
            return False
        elements[element.name] = element
        return True

    def _extract_file(self, result: ParseResult, label: str) -> _FileDeclarations:
        declarations = _FileDeclarations()

        for statement in result.root.named_children:
            declaration = statement
            if statement.type == 'export_statement':
                declaration = statement.child_by_field_name('declaration')
            if declaration is None or declaration.type not in ('lexical_declaration', 'variable_declaration'):
                continue

            for declarator in declaration.named_children:
                if declarator.type != 'variable_declarator':
                    continue
                name_node = declarator.child_by_field_name('name')
                value = declarator.child_by_field_name('value')
                if name_node is None or name_node.type != 'identifier' or value is None:
                    continue
                if value.type != 'call_expression':
                    continue

                callee, is_member = callee_of(value)
                if is_member or callee is None:
                    continue
                name = node_text(name_node)
                if callee in self.table_constructors:
                    self._extract_table(name, statement, value, label, declarations)
                elif callee in self.enum_constructors:
                    declarations.enums.append(self._extract_enum(name, statement, value, label))

        self._extract_indexes(result, label, declarations)
        return declarations

    def _extract_table(self, name: str, statement: Node, call: Node, label: str,
                       declarations: _FileDeclarations):
        """Extract a table and its columns from a table constructor call."""
        db_name = first_string_argument(call) or name
        fields = next((arg for arg in call_arguments(call) if arg.type == 'object'), None)

        columns = []
        if fields is not None:
            for entry in fields.named_children:
                column = self._extract_column(name, entry, label)
                if column is not None:
                    columns.append(column)

        referenced = sorted({
            c.metadata['references_table'] for c in columns
            if c.metadata.get('references_table') and c.metadata['references_table'] != name
        })
        declarations.table_spans[(statement.start_byte, statement.end_byte)] = name
        line, _ = location_of(statement)
        declarations.tables.append(SchemaElement(
            name=name,
            type='table',
            definition_text=node_text(statement),
            file=label,
            line=line,
            dependencies=tuple(referenced),
            metadata={
                'db_name': db_name,
                'columns': [c.name for c in columns],
                'indexes': [],
            },
        ))
        declarations.columns.extend(columns)

    def _extract_column(self, table: str, entry: Node, label: str) -> Optional[SchemaElement]:
        if entry.type == 'pair':
            key = entry.child_by_field_name('key')
            value = entry.child_by_field_name('value')
            if key is None or value is None:
                return None
            column_name = literal_text(key) if key.type == 'string' else node_text(key)
            metadata = self.walk_constraint_chain(value)
        elif entry.type == 'shorthand_property_identifier':
            column_name = node_text(entry)
            metadata = self.walk_constraint_chain(entry)
        else:
            # Spread fields (...timestamps) cannot be resolved lexically
            logger.debug("column_entry_skipped", table=table, node_type=entry.type, path=label)
            return None

        db_name = metadata.pop('db_name', None) or column_name
        dependencies = []
        if metadata.get('references_table'):
            dependencies.append(metadata['references_table'])

        line, _ = location_of(entry)
        return SchemaElement(
            name=f"{table}.{column_name}",
            type='column',
            definition_text=node_text(entry),
            file=label,
            line=line,
            dependencies=tuple(dependencies),
            metadata={'table_name': table, 'column_name': column_name, 'db_name': db_name, **metadata},
        )

    def walk_constraint_chain(self, node: Node) -> Dict[str, Any]:
        """Read column facts off a chain like ``uuid("id").notNull().references(...)``.

        Follows receiver links through any number of method calls until the
        base call or identifier is reached.

        Args:
            node: Field initializer expression

        Returns:
            Column metadata (data_type, nullable, has_default, is_primary_key,
            is_foreign_key, is_unique, references_table, references_column,
            db_name)
        """
        metadata: Dict[str, Any] = {
            'data_type': 'unknown',
            'nullable': True,
            'has_default': False,
            'is_primary_key': False,
            'is_foreign_key': False,
            'is_unique': False,
            'references_table': None,
            'references_column': None,
        }

        current = node
        while current is not None:
            if current.type in ('parenthesized_expression', 'non_null_expression', 'as_expression'):
                current = current.named_children[0] if current.named_children else None
                continue
            if current.type != 'call_expression':
                if current.type in ('identifier', 'shorthand_property_identifier'):
                    metadata['data_type'] = node_text(current)
                break

            function = current.child_by_field_name('function')
            if function is not None and function.type == 'member_expression':
                method = node_text(function.child_by_field_name('property'))
                self._apply_constraint(method, current, metadata)
                current = function.child_by_field_name('object')
                continue

            if function is not None:
                metadata['data_type'] = node_text(function)
            db_name = first_string_argument(current)
            if db_name:
                metadata['db_name'] = db_name
            break

        return metadata

    def _apply_constraint(self, method: str, call: Node, metadata: Dict[str, Any]):
        if method == 'notNull':
            metadata['nullable'] = False
        elif method == 'primaryKey':
            metadata['is_primary_key'] = True
            metadata['nullable'] = False
        elif method in DEFAULT_METHODS:
            metadata['has_default'] = True
        elif method == 'unique':
            metadata['is_unique'] = True
        elif method == 'references':
            metadata['is_foreign_key'] = True
            target = _reference_target(call)
            if target is not None:
                metadata['references_table'], metadata['references_column'] = target

    def _extract_enum(self, name: str, statement: Node, call: Node, label: str) -> SchemaElement:
        values = []
        for arg in call_arguments(call):
            if arg.type == 'array':
                for item in arg.named_children:
                    text = literal_text(item)
                    if text is not None and item.type == 'string':
                        values.append(text)
                break

        line, _ = location_of(statement)
        return SchemaElement(
            name=name,
            type='enum',
            definition_text=node_text(statement),
            file=label,
            line=line,
            metadata={
                'db_name': first_string_argument(call) or name,
                'values': values,
            },
        )

    def _extract_indexes(self, result: ParseResult, label: str, declarations: _FileDeclarations):
        """Find index constructor calls anywhere in the file."""
        for node in iter_nodes(result.root):
            if node.type != 'call_expression':
                continue
            callee, is_member = callee_of(node)
            if is_member or callee not in self.index_constructors:
                continue
            index_name = first_string_argument(node)
            if not index_name:
                continue

            outer, covered, unique = _walk_index_chain(node)
            owner = _enclosing_table(node, declarations.table_spans)
            if owner is None and covered:
                owner = covered[0][0]
            if owner is None:
                logger.warning("index_without_table", index=index_name, path=label)
                continue

            column_names = [column for _, column in covered]
            column_keys = [f"{owner}.{column}" for column in column_names]
            line, _ = location_of(outer)
            declarations.indexes.append(SchemaElement(
                name=index_name,
                type='index',
                definition_text=node_text(outer),
                file=label,
                line=line,
                dependencies=tuple([owner] + column_keys),
                metadata={
                    'table_name': owner,
                    'columns': column_keys,
                    'column_names': column_names,
                    'is_unique': unique or callee.lower().startswith('unique'),
                },
            ))

    def _link_enum_columns(self, mapping: SchemaMapping) -> SchemaMapping:
        """Second pass: mark enum-typed columns and list indexes on their tables.

        Enums may be declared in a different file than the tables using them,
        so this runs after every schema file has been read.
        """
        for key, column in list(mapping.columns.items()):
            enum_name = column.metadata.get('data_type')
            if enum_name in mapping.enums:
                mapping.columns[key] = replace(
                    column,
                    dependencies=column.dependencies + (enum_name,),
                    metadata={**column.metadata, 'enum_type': enum_name},
                )

        for name, table in list(mapping.tables.items()):
            indexes = [i.name for i in mapping.indexes.values() if i.metadata.get('table_name') == name]
            if indexes:
                mapping.tables[name] = replace(table, metadata={**table.metadata, 'indexes': indexes})
        return mapping

    # ------------------------------------------------------------------
    # Usage correlation
    # ------------------------------------------------------------------

    def correlate_usage(self, mapping: SchemaMapping, source_files: Sequence[str | Path]) -> SchemaMapping:
        """Attach usage found in the source corpus to the mapping's elements.

        Args:
            mapping: Mapping from extract_schema (left unchanged)
            source_files: General source files (schema files excluded)

        Returns:
            New SchemaMapping whose elements carry their usage
        """
        catalog = ElementCatalog.from_mapping(mapping)
        if catalog.is_empty:
            return attach_usage(mapping, [])

        scans, warnings = scan_corpus(
            self.project_root, [Path(p) for p in source_files], catalog, self.max_workers
        )
        pairs = [(match.key, match.usage) for scan in scans for match in scan.matches]
        logger.info("usage_correlated", files=len(scans), usages=len(pairs))
        return attach_usage(mapping, pairs, warnings)


def _reference_target(call: Node) -> Optional[tuple]:
    """(table, column) of ``references(() => users.id)``."""
    for arg in call_arguments(call):
        if arg.type != 'arrow_function':
            continue
        body = arg.child_by_field_name('body')
        if body is None or body.type != 'member_expression':
            return None
        table = body.child_by_field_name('object')
        column = body.child_by_field_name('property')
        if table is None or table.type != 'identifier':
            return None
        return node_text(table), node_text(column)
    return None


def _walk_index_chain(index_call: Node):
    """Follow ``index("x").on(t.a, t.b).where(...)`` outward from the index call.

    Returns:
        (outermost call, [(owner identifier, column)], unique flag)
    """
    covered = []
    unique = False
    current = index_call
    while True:
        member = current.parent
        if member is None or member.type != 'member_expression':
            break
        if member.child_by_field_name('object') != current:
            break
        call = member.parent
        if call is None or call.type != 'call_expression' or call.child_by_field_name('function') != member:
            break

        method = node_text(member.child_by_field_name('property'))
        if method == 'on':
            for arg in call_arguments(call):
                if arg.type != 'member_expression':
                    continue
                owner = arg.child_by_field_name('object')
                covered.append((node_text(owner), node_text(arg.child_by_field_name('property'))))
        elif method == 'unique':
            unique = True
        current = call
    return current, covered, unique


def _enclosing_table(node: Node, table_spans: Dict[tuple, str]) -> Optional[str]:
    current = node.parent
    while current is not None:
        table = table_spans.get((current.start_byte, current.end_byte))
        if table is not None:
            return table
        current = current.parent
    return None

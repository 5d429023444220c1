"""Exact-lexical reference matching between source files and schema elements.

Matching is by identifier text, not by symbol resolution:

* an unrelated variable that shares an element's name is a false positive;
* a column reached through an alias or a destructured rename is missed;
* the high-confidence walk does not stop at function boundaries, so every
  reference inside a callback passed to a method named like an operation
  (an Express-style ``app.delete(path, handler)``) is rated high.

These trade-offs are surfaced through the confidence tier of each usage
rather than hidden.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from tree_sitter import Node

from ..errors import SyntaxParseError
from ..utils.logger import get_logger
from .classify import classify_confidence, classify_operation, is_dynamic
from .discovery import relative_name
from .elements import ElementKey, SchemaMapping, UsageInfo
from .extractor import (
    REFERENCE_TOKEN_TYPES,
    ancestor_chain,
    call_chain_hops,
    context_node,
    context_snippet,
    iter_nodes,
    literal_text,
    location_of,
    node_text,
)
from .parser import ParseResult, parse_path

logger = get_logger(__name__)


class ElementCatalog:
    """Name lookup tables for every known element.

    Args:
        tables: Table names
        columns: Column compound keys (``table.column``)
        indexes: Index names
        enums: Enum name -> declared values
    """

    def __init__(self, tables=(), columns=(), indexes=(), enums=None):
        self.tables: Set[str] = set(tables)
        self.columns: Set[str] = set(columns)
        self.indexes: Set[str] = set(indexes)
        self.enum_values: Dict[str, List[str]] = dict(enums or {})

        # Bare column name -> compound keys, in sorted order
        self.columns_by_name: Dict[str, List[str]] = {}
        for key in sorted(self.columns):
            self.columns_by_name.setdefault(key.rsplit('.', 1)[-1], []).append(key)

    @classmethod
    def from_mapping(cls, mapping: SchemaMapping) -> 'ElementCatalog':
        return cls(
            tables=mapping.tables,
            columns=mapping.columns,
            indexes=mapping.indexes,
            enums={name: list(e.metadata.get('values', [])) for name, e in mapping.enums.items()},
        )

    @property
    def is_empty(self) -> bool:
        return not (self.tables or self.columns or self.indexes or self.enum_values)

    def resolve(self, node: Node) -> List[ElementKey]:
        """Elements a token refers to by exact text match.

        A property access ``t.col`` where ``t.col`` is a known compound key
        matches that column only; any other column-name token matches every
        column with that bare name.
        """
        text = node_text(node)
        keys: List[ElementKey] = []
        if text in self.tables:
            keys.append(('table', text))
        if text in self.enum_values:
            keys.append(('enum', text))
        if text in self.indexes:
            keys.append(('index', text))

        compound_keys = self.columns_by_name.get(text)
        if compound_keys:
            owner = _property_owner(node)
            if owner is not None and f"{owner}.{text}" in self.columns:
                keys.append(('column', f"{owner}.{text}"))
            else:
                keys.extend(('column', key) for key in compound_keys)
        return keys


def _property_owner(node: Node) -> Optional[str]:
    """For ``a.b.orders.status`` at ``status``, return ``orders``."""
    parent = node.parent
    if node.type != 'property_identifier' or parent is None or parent.type != 'member_expression':
        return None
    if parent.child_by_field_name('property') != node:
        return None
    owner = parent.child_by_field_name('object')
    if owner is None:
        return None
    if owner.type == 'identifier':
        return node_text(owner)
    if owner.type == 'member_expression':
        return node_text(owner.child_by_field_name('property'))
    return None


@dataclass(frozen=True)
class ReferenceMatch:
    """One token matched to one element, with its structural classification."""
    key: ElementKey
    usage: UsageInfo
    hops: int
    dynamic: bool


@dataclass(frozen=True)
class StringLiteral:
    """Content of a string or template literal found in the corpus."""
    file: str
    line: int
    text: str


@dataclass
class FileScan:
    """Everything extracted from one source file, as plain data."""
    file: str
    matches: List[ReferenceMatch] = field(default_factory=list)
    literals: List[StringLiteral] = field(default_factory=list)


def find_references(result: ParseResult, catalog: ElementCatalog, file_label: str) -> List[ReferenceMatch]:
    """Match every candidate token in a parsed file against the catalog.

    Args:
        result: Parsed source file
        catalog: Known element names
        file_label: File name recorded on each usage

    Returns:
        Matches in source order (one per token and element)
    """
    matches = []
    for node in iter_nodes(result.root):
        if node.type not in REFERENCE_TOKEN_TYPES:
            continue
        keys = catalog.resolve(node)
        if not keys:
            continue

        chain = ancestor_chain(node)
        line, column = location_of(node)
        usage = UsageInfo(
            file=file_label,
            line=line,
            column=column,
            operation=classify_operation(chain),
            context=context_snippet(node),
            confidence=classify_confidence(chain),
        )
        hops = call_chain_hops(node)
        dynamic = is_dynamic(node_text(context_node(node)))
        for key in keys:
            matches.append(ReferenceMatch(key=key, usage=usage, hops=hops, dynamic=dynamic))
    return matches


def collect_literals(result: ParseResult, file_label: str) -> List[StringLiteral]:
    """All string and template literal contents of a file, in source order."""
    literals = []
    for node in iter_nodes(result.root):
        text = literal_text(node)
        if text is None:
            continue
        literals.append(StringLiteral(file=file_label, line=location_of(node)[0], text=text))
    return literals


def scan_source_file(path: Path, catalog: ElementCatalog, file_label: str, shared_parser: bool = True) -> FileScan:
    """Parse one file and extract its references and literals.

    Raises:
        SyntaxParseError: If the file cannot be read or parsed
    """
    result = parse_path(path, shared=shared_parser)
    return FileScan(
        file=file_label,
        matches=find_references(result, catalog, file_label),
        literals=collect_literals(result, file_label),
    )


def scan_corpus(
    project_root: Path,
    paths: Sequence[Path],
    catalog: ElementCatalog,
    max_workers: int = 1,
) -> Tuple[List[FileScan], List[str]]:
    """Scan source files, skipping (and reporting) the ones that fail.

    Per-file scans are independent; with ``max_workers > 1`` they run on a
    thread pool. Results always come back in the order of ``paths``.

    Returns:
        (successful scans in path order, warning messages)
    """
    labels = [relative_name(project_root, p) for p in paths]

    def scan(item: Tuple[Path, str]) -> FileScan | SyntaxParseError:
        path, label = item
        try:
            return scan_source_file(path, catalog, label, shared_parser=max_workers <= 1)
        except SyntaxParseError as e:
            return e

    items = list(zip(paths, labels))
    if max_workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(scan, items))
    else:
        outcomes = [scan(item) for item in items]

    scans: List[FileScan] = []
    warnings: List[str] = []
    for (_, label), outcome in zip(items, outcomes):
        if isinstance(outcome, SyntaxParseError):
            logger.warning("file_skipped", path=label, reason=outcome.message, code=outcome.error_name)
            warnings.append(f"Skipped {label}: {outcome.message}")
            continue
        scans.append(outcome)
    return scans, warnings

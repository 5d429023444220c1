"""Usage scanning: classify every schema reference in the source corpus."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ..config import Config
from ..utils.logger import get_logger
from .classify import COMPLEXITY_TIERS, CONFIDENCE_TIERS, OPERATION_KINDS, complexity_tier
from .discovery import discover_files
from .elements import ELEMENT_TYPES, SchemaMapping
from .references import ElementCatalog, FileScan, scan_corpus
from .sql_text import QueryAnalysis, analyze_sql_text

logger = get_logger(__name__)


@dataclass(frozen=True)
class UsagePattern:
    """A classified reference to one schema element."""
    element_name: str
    element_type: str
    file: str
    line: int
    column: int
    operation: str
    complexity: str
    dynamic: bool
    confidence: str
    context: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'element_name': self.element_name,
            'element_type': self.element_type,
            'file': self.file,
            'line': self.line,
            'column': self.column,
            'operation': self.operation,
            'complexity': self.complexity,
            'dynamic': self.dynamic,
            'confidence': self.confidence,
            'context': self.context,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UsagePattern':
        return cls(**data)


@dataclass
class UsageReport:
    """Stage output: structural usage patterns plus textual SQL analyses."""
    patterns: List[UsagePattern] = field(default_factory=list)
    query_analyses: List[QueryAnalysis] = field(default_factory=list)
    enum_value_hits: Dict[str, List[str]] = field(default_factory=dict)
    files_scanned: int = 0
    warnings: List[str] = field(default_factory=list)

    def patterns_for(self, element_type: str, element_name: str) -> List[UsagePattern]:
        return [
            p for p in self.patterns
            if p.element_type == element_type and p.element_name == element_name
        ]

    def operations_by_element(self) -> Dict[tuple, Dict[str, int]]:
        """(type, name) -> operation -> count."""
        counts: Dict[tuple, Dict[str, int]] = {}
        for pattern in self.patterns:
            per_element = counts.setdefault((pattern.element_type, pattern.element_name), {})
            per_element[pattern.operation] = per_element.get(pattern.operation, 0) + 1
        return counts

    @property
    def summary(self) -> Dict[str, Any]:
        by_operation = {kind: 0 for kind in OPERATION_KINDS}
        by_complexity = {tier: 0 for tier in COMPLEXITY_TIERS}
        by_confidence = {tier: 0 for tier in CONFIDENCE_TIERS}
        referenced = {element_type: set() for element_type in ELEMENT_TYPES}
        dynamic = 0
        for pattern in self.patterns:
            by_operation[pattern.operation] += 1
            by_complexity[pattern.complexity] += 1
            by_confidence[pattern.confidence] += 1
            referenced[pattern.element_type].add(pattern.element_name)
            dynamic += pattern.dynamic

        return {
            'files_scanned': self.files_scanned,
            'files_skipped': len(self.warnings),
            'total_usages': len(self.patterns),
            'by_operation': by_operation,
            'by_complexity': by_complexity,
            'by_confidence': by_confidence,
            'dynamic_usages': dynamic,
            'query_analyses': len(self.query_analyses),
            'referenced_elements': {k: len(v) for k, v in referenced.items()},
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary,
            'patterns': [p.to_dict() for p in self.patterns],
            'query_analyses': [q.to_dict() for q in self.query_analyses],
            'enum_value_hits': {k: list(v) for k, v in self.enum_value_hits.items()},
            'files_scanned': self.files_scanned,
            'warnings': list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UsageReport':
        return cls(
            patterns=[UsagePattern.from_dict(p) for p in data.get('patterns', [])],
            query_analyses=[QueryAnalysis.from_dict(q) for q in data.get('query_analyses', [])],
            enum_value_hits={k: list(v) for k, v in data.get('enum_value_hits', {}).items()},
            files_scanned=data.get('files_scanned', 0),
            warnings=list(data.get('warnings', [])),
        )


class UsageScanner:
    """Re-walk the source corpus and classify each reference."""

    def __init__(self, project_root: str | Path = ".", max_workers: int = 1):
        self.project_root = Path(project_root).resolve()
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config: Config) -> 'UsageScanner':
        return cls(config.project_root, max_workers=config.max_workers)

    def scan_project(self, config: Config, mapping: SchemaMapping) -> UsageReport:
        """Scan the configured source globs, excluding schema files."""
        schema_files = set(discover_files(config.project_root, config.schema_patterns))
        source_files = [
            p for p in discover_files(config.project_root, config.source_patterns)
            if p not in schema_files
        ]
        return self.scan(mapping, source_files)

    def scan(self, mapping: SchemaMapping, source_files: Sequence[str | Path]) -> UsageReport:
        """Classify every reference to a known element in the given files.

        Args:
            mapping: Schema mapping (only element names are used)
            source_files: Files to scan

        Returns:
            UsageReport with one pattern per matched reference
        """
        catalog = ElementCatalog.from_mapping(mapping)
        scans, warnings = scan_corpus(
            self.project_root, [Path(p) for p in source_files], catalog, self.max_workers
        )

        report = UsageReport(files_scanned=len(scans), warnings=warnings)
        for file_scan in scans:
            report.patterns.extend(self._patterns(file_scan))
            report.query_analyses.extend(self._query_analyses(file_scan))

        report.enum_value_hits = self._enum_value_hits(catalog, scans)
        logger.info(
            "usage_scanned",
            files=report.files_scanned,
            patterns=len(report.patterns),
            queries=len(report.query_analyses),
        )
        return report

    def _patterns(self, file_scan: FileScan) -> List[UsagePattern]:
        return [
            UsagePattern(
                element_name=match.key[1],
                element_type=match.key[0],
                file=match.usage.file,
                line=match.usage.line,
                column=match.usage.column,
                operation=match.usage.operation,
                complexity=complexity_tier(match.hops),
                dynamic=match.dynamic,
                confidence=match.usage.confidence,
                context=match.usage.context,
            )
            for match in file_scan.matches
        ]

    def _query_analyses(self, file_scan: FileScan) -> List[QueryAnalysis]:
        analyses = []
        for literal in file_scan.literals:
            analysis = analyze_sql_text(literal.text, literal.file, literal.line)
            if analysis is not None:
                analyses.append(analysis)
        return analyses

    def _enum_value_hits(self, catalog: ElementCatalog, scans: List[FileScan]) -> Dict[str, List[str]]:
        """Declared enum values that appear as a whole string literal somewhere."""
        literal_texts = {literal.text for scan in scans for literal in scan.literals}
        return {
            name: [value for value in values if value in literal_texts]
            for name, values in sorted(catalog.enum_values.items())
        }

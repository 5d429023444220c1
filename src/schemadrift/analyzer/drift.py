"""Drift analysis: severity-ranked misalignment findings and schema health."""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..config import DEFAULT_WHERE_THRESHOLD
from ..utils.logger import get_logger
from .classify import COMPLEXITY_TIERS
from .corroboration import CorroborationSignals
from .dependency_graph import SchemaDependencyGraph
from .elements import SchemaMapping
from .sql_text import QueryAnalysis
from .unused_elements import FILTER_OPERATIONS, UnusedElementsReport, exercised_indexes
from .usage_scanner import UsageReport

logger = get_logger(__name__)

DRIFT_TYPES = ('unused', 'misaligned', 'added', 'removed', 'modified')
SEVERITIES = ('critical', 'major', 'minor', 'info')
SEVERITY_RANK = {severity: rank for rank, severity in enumerate(SEVERITIES)}

SEVERITY_BY_CONFIDENCE = {'high': 'major', 'medium': 'minor', 'low': 'info'}
SCORE_BY_CONFIDENCE = {'high': 0.8, 'medium': 0.6, 'low': 0.3}

SEVERITY_PENALTY = {'critical': 20, 'major': 10, 'minor': 5, 'info': 1}
UNUSED_ELEMENT_PENALTY = 0.5
REDUNDANT_INDEX_PENALTY = 1
UTILIZATION_BONUS = 5
UTILIZATION_BONUS_THRESHOLD = 0.8

# Estimated bytes per declared element
TABLE_BYTES = 100_000
COLUMN_BYTES = 1_000
INDEX_BYTES = 50_000

COMPLEXITY_SCORE = {'simple': 1, 'medium': 2, 'complex': 3}


@dataclass(frozen=True)
class DriftFinding:
    """One divergence between the declared schema and observed usage."""
    element_name: str
    element_type: str
    drift_type: str
    severity: str
    confidence: float
    description: str
    impact: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'element_name': self.element_name,
            'element_type': self.element_type,
            'drift_type': self.drift_type,
            'severity': self.severity,
            'confidence': self.confidence,
            'description': self.description,
            'impact': self.impact,
            'recommendation': self.recommendation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DriftFinding':
        return cls(**data)


@dataclass
class DriftReport:
    """Stage output: findings, health score and supporting analyses."""
    findings: List[DriftFinding] = field(default_factory=list)
    schema_health: int = 100
    index_utilization: float = 1.0
    evolution_velocity: float = 0.0
    maintenance_burden: str = 'low'
    evolution_patterns: List[Dict[str, Any]] = field(default_factory=list)
    performance_analysis: Dict[str, Any] = field(default_factory=dict)
    recommendations: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def by_severity(self, severity: str) -> List[DriftFinding]:
        return [f for f in self.findings if f.severity == severity]

    @property
    def summary(self) -> Dict[str, Any]:
        by_severity = {s: 0 for s in SEVERITIES}
        by_drift_type = {d: 0 for d in DRIFT_TYPES}
        for finding in self.findings:
            by_severity[finding.severity] += 1
            by_drift_type[finding.drift_type] += 1
        return {
            'total_findings': len(self.findings),
            'critical_findings': by_severity['critical'],
            'by_severity': by_severity,
            'by_drift_type': by_drift_type,
            'schema_health': self.schema_health,
            'index_utilization': self.index_utilization,
            'evolution_velocity': self.evolution_velocity,
            'maintenance_burden': self.maintenance_burden,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary,
            'findings': [f.to_dict() for f in self.findings],
            'schema_health': self.schema_health,
            'index_utilization': self.index_utilization,
            'evolution_velocity': self.evolution_velocity,
            'maintenance_burden': self.maintenance_burden,
            'evolution_patterns': [dict(p) for p in self.evolution_patterns],
            'performance_analysis': self.performance_analysis,
            'recommendations': {k: [dict(r) for r in v] for k, v in self.recommendations.items()},
            'warnings': list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DriftReport':
        return cls(
            findings=[DriftFinding.from_dict(f) for f in data.get('findings', [])],
            schema_health=data.get('schema_health', 100),
            index_utilization=data.get('index_utilization', 1.0),
            evolution_velocity=data.get('evolution_velocity', 0.0),
            maintenance_burden=data.get('maintenance_burden', 'low'),
            evolution_patterns=[dict(p) for p in data.get('evolution_patterns', [])],
            performance_analysis=data.get('performance_analysis', {}),
            recommendations={k: [dict(r) for r in v] for k, v in data.get('recommendations', {}).items()},
            warnings=list(data.get('warnings', [])),
        )


def sort_findings(findings: List[DriftFinding]) -> List[DriftFinding]:
    """Most severe first; equal severities keep insertion order."""
    return sorted(findings, key=lambda f: SEVERITY_RANK[f.severity])


def calculate_schema_health(
    findings: List[DriftFinding],
    unused_elements: int,
    redundant_indexes: int,
    index_utilization: float,
) -> int:
    """Score the schema from 0 to 100.

    Starts at 100, subtracts a fixed penalty per finding by severity,
    0.5 per unused element and 1 per redundant index, adds 5 when index
    utilization exceeds 0.8, then clamps and rounds halves up.
    """
    score = 100.0
    for finding in findings:
        score -= SEVERITY_PENALTY[finding.severity]
    score -= unused_elements * UNUSED_ELEMENT_PENALTY
    score -= redundant_indexes * REDUNDANT_INDEX_PENALTY
    if index_utilization > UTILIZATION_BONUS_THRESHOLD:
        score += UTILIZATION_BONUS
    return int(math.floor(max(0.0, min(100.0, score)) + 0.5))


def redundant_prefix_indexes(mapping: SchemaMapping) -> Dict[str, str]:
    """Indexes whose column list is a leading prefix of another index on the same table.

    Returns:
        Redundant index name -> covering index name
    """
    redundant = {}
    indexes = list(mapping.indexes.values())
    for index in indexes:
        columns = index.metadata.get('columns', [])
        if not columns:
            continue
        for other in indexes:
            if other.name == index.name or other.metadata.get('table_name') != index.metadata.get('table_name'):
                continue
            other_columns = other.metadata.get('columns', [])
            if len(other_columns) < len(columns) or other_columns[:len(columns)] != columns:
                continue
            if index.metadata.get('is_unique') and not other.metadata.get('is_unique'):
                # A unique constraint is not made redundant by a plain index
                continue
            if len(other_columns) == len(columns) and other.name > index.name:
                # Identical definitions: report only the later name
                continue
            redundant[index.name] = other.name
            break
    return redundant


def unindexed_filter_columns(mapping: SchemaMapping, usage: UsageReport, threshold: int) -> List[tuple]:
    """Non-key columns filtered more than ``threshold`` times that no index leads with.

    Returns:
        (column key, where count) pairs in first-usage order
    """
    leading_columns = {
        index.metadata['columns'][0]
        for index in mapping.indexes.values()
        if index.metadata.get('columns')
    }
    flagged = []
    for (element_type, name), counts in usage.operations_by_element().items():
        if element_type != 'column' or name in leading_columns:
            continue
        column = mapping.columns.get(name)
        if column is not None and column.metadata.get('is_primary_key'):
            continue
        if counts.get('where', 0) > threshold:
            flagged.append((name, counts['where']))
    return flagged


class DriftAnalyzer:
    """Aggregate misalignment signals into ranked findings."""

    def __init__(
        self,
        signals: Optional[CorroborationSignals] = None,
        where_threshold: int = DEFAULT_WHERE_THRESHOLD,
    ):
        """Initialize analyzer.

        Args:
            signals: Migration contents for evolution patterns
            where_threshold: Filter count above which an unindexed column is flagged
        """
        self.signals = signals or CorroborationSignals()
        self.where_threshold = where_threshold

    def analyze(
        self,
        mapping: SchemaMapping,
        usage: UsageReport,
        unused: UnusedElementsReport,
    ) -> DriftReport:
        """Produce findings, health score and supporting analyses.

        Args:
            mapping: Schema mapping with usage attached
            usage: Usage report
            unused: Unused-element report

        Returns:
            DriftReport with findings sorted by severity
        """
        graph = SchemaDependencyGraph(mapping)
        redundant = redundant_prefix_indexes(mapping)

        findings: List[DriftFinding] = []
        findings.extend(self._unused_findings(unused))
        findings.extend(self._dangling_reference_findings(graph))
        findings.extend(self._redundant_index_findings(redundant))
        findings.extend(self._unfiltered_column_findings(mapping, usage))
        findings.extend(self._unindexed_filter_findings(mapping, usage))
        findings.extend(self._enum_value_findings(mapping, usage))
        findings.extend(self._undeclared_table_findings(mapping, usage.query_analyses))
        findings = sort_findings(findings)

        used_indexes = exercised_indexes(mapping, usage)
        index_utilization = round(len(used_indexes) / len(mapping.indexes), 4) if mapping.indexes else 1.0
        unused_indexes = {c.element_name for c in unused.by_type('index')}
        redundant_indexes = sorted(unused_indexes | set(redundant))

        performance = self._performance_analysis(mapping, graph, usage, unused, used_indexes, redundant_indexes)
        patterns = self._evolution_patterns()
        report = DriftReport(
            findings=findings,
            schema_health=calculate_schema_health(
                findings, len(unused.candidates), len(redundant_indexes), index_utilization
            ),
            index_utilization=index_utilization,
            evolution_velocity=round(sum(p['frequency'] for p in patterns) / 12, 2),
            maintenance_burden=self._maintenance_burden(performance['maintenance_overhead']),
            evolution_patterns=patterns,
            performance_analysis=performance,
            warnings=list(unused.warnings),
        )
        report.recommendations = self._recommendations(report)
        logger.info("drift_analyzed", findings=len(findings), health=report.schema_health)
        return report

    # ------------------------------------------------------------------
    # Finding sources
    # ------------------------------------------------------------------

    def _unused_findings(self, unused: UnusedElementsReport) -> List[DriftFinding]:
        return [
            DriftFinding(
                element_name=c.element_name,
                element_type=c.element_type,
                drift_type='unused',
                severity=SEVERITY_BY_CONFIDENCE[c.confidence],
                confidence=SCORE_BY_CONFIDENCE[c.confidence],
                description=f"{c.element_type} '{c.element_name}' appears to be unused",
                impact='Maintenance overhead and potential performance impact',
                recommendation=c.recommended_action,
            )
            for c in unused.candidates
        ]

    def _dangling_reference_findings(self, graph: SchemaDependencyGraph) -> List[DriftFinding]:
        return [
            DriftFinding(
                element_name=column,
                element_type='column',
                drift_type='removed',
                severity='critical',
                confidence=0.95,
                description=f"Foreign key '{column}' references undeclared table '{table}'",
                impact='Schema declaration is inconsistent; migrations will fail or data integrity is unenforced',
                recommendation=f"Declare table '{table}' or remove the reference",
            )
            for column, table in graph.dangling_references()
        ]

    def _redundant_index_findings(self, redundant: Dict[str, str]) -> List[DriftFinding]:
        return [
            DriftFinding(
                element_name=name,
                element_type='index',
                drift_type='misaligned',
                severity='minor',
                confidence=0.6,
                description=f"Index '{name}' is covered by index '{covering}'",
                impact='Unnecessary storage and write performance overhead',
                recommendation=f"Drop '{name}' in favor of '{covering}'",
            )
            for name, covering in redundant.items()
        ]

    def _unfiltered_column_findings(self, mapping: SchemaMapping, usage: UsageReport) -> List[DriftFinding]:
        operations = usage.operations_by_element()
        findings = []
        for key, column in mapping.columns.items():
            counts = operations.get(('column', key), {})
            filtered = sum(counts.get(op, 0) for op in FILTER_OPERATIONS)
            if counts.get('select', 0) > 0 and filtered == 0 and not column.metadata.get('is_primary_key'):
                findings.append(DriftFinding(
                    element_name=key,
                    element_type='column',
                    drift_type='misaligned',
                    severity='minor',
                    confidence=0.6,
                    description=f"Column '{key}' is selected but never used for filtering or joining",
                    impact='Potential for data over-fetching',
                    recommendation='Review if this column is necessary in SELECT statements',
                ))
        return findings

    def _unindexed_filter_findings(self, mapping: SchemaMapping, usage: UsageReport) -> List[DriftFinding]:
        findings = []
        for name, where_count in unindexed_filter_columns(mapping, usage, self.where_threshold):
            findings.append(DriftFinding(
                element_name=name,
                element_type='column',
                drift_type='misaligned',
                severity='minor',
                confidence=0.6,
                description=f"Column '{name}' is used in {where_count} WHERE clauses but no index leads with it",
                impact='Potential query performance degradation',
                recommendation='Consider adding an index for this column',
            ))
        return findings

    def _enum_value_findings(self, mapping: SchemaMapping, usage: UsageReport) -> List[DriftFinding]:
        referenced = {p.element_name for p in usage.patterns if p.element_type == 'enum'}
        enum_columns = {c.metadata.get('enum_type') for c in mapping.columns.values() if c.is_used}
        findings = []
        for name, enum in mapping.enums.items():
            if name not in referenced and name not in enum_columns:
                continue
            seen = set(usage.enum_value_hits.get(name, []))
            missing = [v for v in enum.metadata.get('values', []) if v not in seen]
            if missing:
                findings.append(DriftFinding(
                    element_name=name,
                    element_type='enum',
                    drift_type='modified',
                    severity='info',
                    confidence=0.3,
                    description=f"Enum '{name}' values never referenced in code: {', '.join(missing)}",
                    impact='Declared values may be obsolete or only set outside the application',
                    recommendation='Confirm the values are still produced before removing them',
                ))
        return findings

    def _undeclared_table_findings(self, mapping: SchemaMapping, analyses: List[QueryAnalysis]) -> List[DriftFinding]:
        declared: Set[str] = set()
        for table in mapping.tables.values():
            declared.add(table.name.lower())
            declared.add(str(table.metadata.get('db_name', '')).lower())

        findings = []
        reported = set()
        for analysis in analyses:
            for table in analysis.tables:
                if table.lower() in declared or table.lower() in reported:
                    continue
                reported.add(table.lower())
                findings.append(DriftFinding(
                    element_name=table,
                    element_type='table',
                    drift_type='added',
                    severity='info',
                    confidence=0.3,
                    description=f"Table '{table}' is queried in raw SQL ({analysis.file}:{analysis.line}) but not declared",
                    impact='Code depends on schema the declarations do not describe',
                    recommendation='Declare the table or confirm the raw query is obsolete',
                ))
        return findings

    # ------------------------------------------------------------------
    # Supporting analyses
    # ------------------------------------------------------------------

    def _performance_analysis(
        self,
        mapping: SchemaMapping,
        graph: SchemaDependencyGraph,
        usage: UsageReport,
        unused: UnusedElementsReport,
        used_indexes: List[str],
        redundant_indexes: List[str],
    ) -> Dict[str, Any]:
        distribution = {tier: 0 for tier in COMPLEXITY_TIERS}
        for pattern in usage.patterns:
            distribution[pattern.complexity] += 1
        total = sum(distribution.values())
        average = (
            sum(COMPLEXITY_SCORE[tier] * count for tier, count in distribution.items()) / total
            if total else 0
        )

        unused_count = len(unused.candidates)
        return {
            'query_complexity': {**distribution, 'average_complexity': round(average, 2)},
            'index_efficiency': {
                'well_utilized': list(used_indexes),
                'over_indexed': [i for i in mapping.indexes if i not in set(used_indexes)],
                'redundant': list(redundant_indexes),
            },
            'schema_size': {
                'tables': len(mapping.tables),
                'columns': len(mapping.columns),
                'indexes': len(mapping.indexes),
                'enums': len(mapping.enums),
                'foreign_keys': sum(graph.foreign_key_counts().values()),
                'estimated_storage': (
                    len(mapping.tables) * TABLE_BYTES
                    + len(mapping.columns) * COLUMN_BYTES
                    + len(mapping.indexes) * INDEX_BYTES
                ),
            },
            'maintenance_overhead': {
                'unused_elements': unused_count,
                'redundant_indexes': len(redundant_indexes),
                'complex_queries': distribution['complex'],
                'migration_complexity': 'low' if unused_count < 5 else 'medium' if unused_count < 15 else 'high',
            },
        }

    def _maintenance_burden(self, overhead: Dict[str, Any]) -> str:
        total = overhead['unused_elements'] + overhead['redundant_indexes'] + overhead['complex_queries']
        if total < 10:
            return 'low'
        if total < 30:
            return 'medium'
        return 'high'

    def _evolution_patterns(self) -> List[Dict[str, Any]]:
        counts = self.signals.evolution_counts()
        patterns = []
        if counts['table_additions'] > 0:
            patterns.append({
                'pattern': 'table_growth',
                'trend': 'increasing',
                'frequency': counts['table_additions'],
                'examples': [f"{counts['table_additions']} tables added across migrations"],
                'recommendation': 'Monitor for schema bloat and consider consolidation opportunities',
            })
        if counts['index_additions'] > counts['column_additions'] * 0.5:
            patterns.append({
                'pattern': 'index_proliferation',
                'trend': 'increasing',
                'frequency': counts['index_additions'],
                'examples': [f"{counts['index_additions']} indexes vs {counts['column_additions']} columns"],
                'recommendation': 'Review index necessity and remove unused indexes',
            })
        removals = counts['table_removals'] + counts['column_removals']
        if removals > 0:
            patterns.append({
                'pattern': 'schema_contraction',
                'trend': 'decreasing',
                'frequency': removals,
                'examples': [f"{counts['table_removals']} tables and {counts['column_removals']} columns dropped"],
                'recommendation': 'Keep declarations in sync with dropped objects',
            })
        return patterns

    def _recommendations(self, report: DriftReport) -> Dict[str, List[Dict[str, str]]]:
        immediate, medium_term, long_term = [], [], []
        critical = report.by_severity('critical')
        if critical:
            immediate.append({
                'action': 'Address critical schema drifts',
                'reason': f"{len(critical)} critical issues found",
                'impact': 'High - potential data integrity or performance issues',
                'effort': 'high',
            })

        over_indexed = report.performance_analysis['index_efficiency']['over_indexed']
        if len(over_indexed) > 5:
            immediate.append({
                'action': 'Remove unused indexes',
                'reason': f"{len(over_indexed)} unused indexes found",
                'impact': 'Medium - improved write performance and reduced storage',
                'effort': 'low',
            })

        complex_queries = report.performance_analysis['query_complexity']['complex']
        if complex_queries > 10:
            medium_term.append({
                'action': 'Optimize complex queries',
                'reason': f"{complex_queries} complex queries detected",
                'impact': 'High - improved query performance',
                'effort': 'medium',
            })

        unused_elements = report.performance_analysis['maintenance_overhead']['unused_elements']
        if unused_elements > 20:
            long_term.append({
                'action': 'Schema cleanup initiative',
                'reason': f"{unused_elements} unused elements",
                'impact': 'Medium - reduced maintenance burden',
                'effort': 'high',
            })

        return {'immediate': immediate, 'medium_term': medium_term, 'long_term': long_term}

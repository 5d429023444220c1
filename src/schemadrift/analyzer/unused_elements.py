"""Unused-element analysis: removal confidence, blast radius and migration phases."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import CrossReferenceError
from ..utils.logger import get_logger
from .classify import CONFIDENCE_TIERS
from .corroboration import CorroborationSignals
from .dependency_graph import COVERS, ENUM_TYPE, FOREIGN_KEY, SchemaDependencyGraph
from .elements import ELEMENT_TYPES, SchemaElement, SchemaMapping
from .usage_scanner import UsageReport

logger = get_logger(__name__)

ACTIONS = ('remove', 'investigate', 'keep')
PHASES = ('phase1', 'phase2', 'phase3')

ROLLBACK_STRATEGY = 'Each phase includes rollback scripts and monitoring checkpoints'

# Operations a query planner can serve from an index
FILTER_OPERATIONS = {'where', 'join', 'orderby'}

SAFEGUARDS = {
    'table': (
        'Create database backup',
        'Check for runtime references',
        'Verify no external system dependencies',
    ),
    'column': (
        'Ensure column is truly unused',
        'Check for computed columns that reference it',
        'Verify no reporting dependencies',
    ),
    'index': (
        'Monitor query performance after removal',
        'Keep index definition for quick recreation',
    ),
    'enum': (
        'Verify no active data uses enum values',
        'Check for future planned usage',
    ),
}

# Estimated bytes reclaimed per removed element
TABLE_STORAGE_BYTES = 1_000_000
COLUMN_STORAGE_BYTES = 10_000


@dataclass(frozen=True)
class UnusedElementCandidate:
    """An element with no recorded usage and what to do about it."""
    element_name: str
    element_type: str
    confidence: str
    reasons: Tuple[str, ...]
    recommended_action: str
    priority: str
    migration_complexity: str
    potential_impact: str
    dependents: Tuple[str, ...] = ()
    blast_radius: Tuple[str, ...] = ()
    safeguards: Tuple[str, ...] = ()
    rollback_plan: str = ''

    @property
    def ref(self) -> Dict[str, str]:
        return {'name': self.element_name, 'type': self.element_type}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'element_name': self.element_name,
            'element_type': self.element_type,
            'confidence': self.confidence,
            'reasons': list(self.reasons),
            'recommended_action': self.recommended_action,
            'priority': self.priority,
            'migration_complexity': self.migration_complexity,
            'potential_impact': self.potential_impact,
            'dependents': list(self.dependents),
            'blast_radius': list(self.blast_radius),
            'safeguards': list(self.safeguards),
            'rollback_plan': self.rollback_plan,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UnusedElementCandidate':
        return cls(
            element_name=data['element_name'],
            element_type=data['element_type'],
            confidence=data['confidence'],
            reasons=tuple(data['reasons']),
            recommended_action=data['recommended_action'],
            priority=data['priority'],
            migration_complexity=data['migration_complexity'],
            potential_impact=data['potential_impact'],
            dependents=tuple(data.get('dependents', ())),
            blast_radius=tuple(data.get('blast_radius', ())),
            safeguards=tuple(data.get('safeguards', ())),
            rollback_plan=data.get('rollback_plan', ''),
        )


@dataclass
class UnusedElementsReport:
    """Stage output: candidates, removal phases and recommendations."""
    candidates: List[UnusedElementCandidate] = field(default_factory=list)
    phases: Dict[str, List[Dict[str, str]]] = field(default_factory=lambda: {p: [] for p in PHASES})
    recommendations: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)
    potential_savings: Dict[str, Any] = field(default_factory=dict)
    rollback_strategy: str = ROLLBACK_STRATEGY
    warnings: List[str] = field(default_factory=list)

    def by_type(self, element_type: str) -> List[UnusedElementCandidate]:
        return [c for c in self.candidates if c.element_type == element_type]

    @property
    def summary(self) -> Dict[str, Any]:
        by_type = {t: 0 for t in ELEMENT_TYPES}
        by_confidence = {t: 0 for t in CONFIDENCE_TIERS}
        by_action = {a: 0 for a in ACTIONS}
        for candidate in self.candidates:
            by_type[candidate.element_type] += 1
            by_confidence[candidate.confidence] += 1
            by_action[candidate.recommended_action] += 1
        return {
            'total_candidates': len(self.candidates),
            'by_type': by_type,
            'by_confidence': by_confidence,
            'by_action': by_action,
            'phases': {phase: len(refs) for phase, refs in self.phases.items()},
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary,
            'candidates': [c.to_dict() for c in self.candidates],
            'phases': {k: [dict(r) for r in v] for k, v in self.phases.items()},
            'recommendations': {k: [dict(r) for r in v] for k, v in self.recommendations.items()},
            'potential_savings': dict(self.potential_savings),
            'rollback_strategy': self.rollback_strategy,
            'warnings': list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UnusedElementsReport':
        return cls(
            candidates=[UnusedElementCandidate.from_dict(c) for c in data.get('candidates', [])],
            phases={k: [dict(r) for r in v] for k, v in data.get('phases', {}).items()},
            recommendations={k: [dict(r) for r in v] for k, v in data.get('recommendations', {}).items()},
            potential_savings=dict(data.get('potential_savings', {})),
            rollback_strategy=data.get('rollback_strategy', ROLLBACK_STRATEGY),
            warnings=list(data.get('warnings', [])),
        )


def exercised_indexes(mapping: SchemaMapping, usage: UsageReport) -> List[str]:
    """Indexes that queries in the corpus can use.

    An index counts as exercised when its name is referenced, or when its
    leading column is filtered, joined or ordered on somewhere.

    Returns:
        Index names in declaration order
    """
    filtered = {
        p.element_name for p in usage.patterns
        if p.element_type == 'column' and p.operation in FILTER_OPERATIONS
    }
    named = {p.element_name for p in usage.patterns if p.element_type == 'index'}
    exercised = []
    for name, index in mapping.indexes.items():
        columns = index.metadata.get('columns', [])
        if index.is_used or name in named or (columns and columns[0] in filtered):
            exercised.append(name)
    return exercised


def assign_phase(candidate: UnusedElementCandidate) -> str:
    """Removal phase of a candidate; predicates are tried in phase order.

    Candidates matching none of the three predicates go to phase 2 unless
    their confidence is low, in which case they wait for phase 3.
    """
    if candidate.element_type == 'index' or (
        candidate.element_type == 'column' and candidate.migration_complexity == 'simple'
    ):
        return 'phase1'
    if candidate.migration_complexity == 'medium' and candidate.confidence != 'low':
        return 'phase2'
    if candidate.migration_complexity == 'complex' or candidate.potential_impact == 'high':
        return 'phase3'
    return 'phase3' if candidate.confidence == 'low' else 'phase2'


def recommended_action(confidence: str, dependents: Tuple[str, ...]) -> str:
    if dependents:
        return 'keep'
    return 'remove' if confidence == 'high' else 'investigate'


class UnusedElementsAnalyzer:
    """Classify every element without usage as a removal candidate."""

    def __init__(self, signals: Optional[CorroborationSignals] = None):
        """Initialize analyzer.

        Args:
            signals: Migration and test contents (none: treated as empty)
        """
        self.signals = signals or CorroborationSignals()

    def analyze(self, mapping: SchemaMapping, usage: UsageReport) -> UnusedElementsReport:
        """Build candidates for every element with zero recorded usage.

        Args:
            mapping: Schema mapping with usage attached
            usage: Usage report for the same corpus

        Returns:
            UnusedElementsReport
        """
        graph = SchemaDependencyGraph(mapping)
        referenced = {(p.element_type, p.element_name) for p in usage.patterns}
        referenced.update(('index', name) for name in exercised_indexes(mapping, usage))

        report = UnusedElementsReport(warnings=list(self.signals.warnings))
        for element in mapping.elements():
            if element.is_used or element.key in referenced:
                continue
            report.candidates.append(self._analyze_element(element, graph))

        report.phases = self._build_phases(report.candidates)
        report.recommendations = self._recommendations(report.candidates)
        report.potential_savings = self._potential_savings(report.candidates)
        logger.info("unused_analyzed", candidates=len(report.candidates))
        return report

    def _analyze_element(self, element: SchemaElement, graph: SchemaDependencyGraph) -> UnusedElementCandidate:
        analyzers = {
            'table': self._analyze_table,
            'column': self._analyze_column,
            'index': self._analyze_index,
            'enum': self._analyze_enum,
        }
        return analyzers[element.type](element, graph)

    def _analyze_table(self, table: SchemaElement, graph: SchemaDependencyGraph) -> UnusedElementCandidate:
        reasons = []
        dependents = tuple(graph.dependents(table.key, {FOREIGN_KEY}))
        in_migrations = self.signals.referenced_in_migrations(table)
        in_tests = self.signals.referenced_in_tests(table)

        reasons.append('Referenced in migrations' if in_migrations else 'Not referenced in migrations')
        if dependents:
            reasons.append(f"Has {len(dependents)} foreign key dependents")
        else:
            reasons.append('No foreign key dependencies')
        reasons.append('Referenced in tests' if in_tests else 'No test coverage found')

        # Most restrictive signal wins
        if dependents:
            confidence = 'low'
        elif in_tests:
            confidence = 'medium'
        else:
            confidence = 'high'

        return UnusedElementCandidate(
            element_name=table.name,
            element_type='table',
            confidence=confidence,
            reasons=tuple(reasons),
            recommended_action=recommended_action(confidence, dependents),
            priority='medium' if confidence == 'high' else 'low',
            migration_complexity='complex' if dependents else 'simple',
            potential_impact='high' if dependents else 'low',
            dependents=dependents,
            blast_radius=tuple(graph.blast_radius(table.key)),
            safeguards=SAFEGUARDS['table'],
            rollback_plan='Complex rollback required' if dependents else 'Simple table recreation',
        )

    def _analyze_column(self, column: SchemaElement, graph: SchemaDependencyGraph) -> UnusedElementCandidate:
        meta = column.metadata
        reasons = []
        if meta.get('nullable'):
            reasons.append('Column is nullable')
        if meta.get('has_default'):
            reasons.append('Has default value')
        if meta.get('is_primary_key'):
            reasons.append('Part of primary key')
        if meta.get('is_foreign_key'):
            reasons.append('Part of foreign key')

        # Covering indexes lower confidence but do not block removal
        covering = graph.dependents(column.key, {COVERS})
        if covering:
            reasons.append(f"Used in {len(covering)} indexes")
        dependents = tuple(graph.dependents(column.key, {FOREIGN_KEY, ENUM_TYPE}))

        if meta.get('is_primary_key') or meta.get('is_foreign_key') or covering:
            confidence = 'low'
        elif meta.get('nullable'):
            confidence = 'high'
        else:
            confidence = 'medium'

        key_role = meta.get('is_primary_key') or meta.get('is_foreign_key')
        return UnusedElementCandidate(
            element_name=column.name,
            element_type='column',
            confidence=confidence,
            reasons=tuple(reasons),
            recommended_action=recommended_action(confidence, dependents),
            priority='low',
            migration_complexity='simple' if meta.get('nullable') else 'medium',
            potential_impact='high' if key_role else 'low',
            dependents=dependents,
            blast_radius=tuple(graph.blast_radius(column.key)),
            safeguards=SAFEGUARDS['column'],
            rollback_plan='Re-add column from saved definition and backfill data',
        )

    def _analyze_index(self, index: SchemaElement, graph: SchemaDependencyGraph) -> UnusedElementCandidate:
        # Dropping an index never cascades, so unused indexes are always safe to remove
        return UnusedElementCandidate(
            element_name=index.name,
            element_type='index',
            confidence='high',
            reasons=('No queries found using this index',),
            recommended_action='remove',
            priority='high',
            migration_complexity='simple',
            potential_impact='low',
            safeguards=SAFEGUARDS['index'],
            rollback_plan='Recreate index from saved definition',
        )

    def _analyze_enum(self, enum: SchemaElement, graph: SchemaDependencyGraph) -> UnusedElementCandidate:
        dependents = tuple(graph.dependents(enum.key, {ENUM_TYPE}))
        if dependents:
            reasons = (f"Used in {len(dependents)} column definitions",)
            confidence = 'low'
        else:
            reasons = ('Not used in any column definitions',)
            confidence = 'high'

        return UnusedElementCandidate(
            element_name=enum.name,
            element_type='enum',
            confidence=confidence,
            reasons=reasons,
            recommended_action=recommended_action(confidence, dependents),
            priority='low',
            migration_complexity='simple' if confidence == 'high' else 'medium',
            potential_impact='low' if confidence == 'high' else 'medium',
            dependents=dependents,
            blast_radius=tuple(graph.blast_radius(enum.key)),
            safeguards=SAFEGUARDS['enum'],
            rollback_plan='Recreate enum type from saved value list',
        )

    def _build_phases(self, candidates: List[UnusedElementCandidate]) -> Dict[str, List[Dict[str, str]]]:
        phases = {phase: [] for phase in PHASES}
        seen = set()
        for candidate in candidates:
            key = (candidate.element_type, candidate.element_name)
            if key in seen:
                raise CrossReferenceError.duplicate_candidate(f"{key[0]}:{key[1]}")
            seen.add(key)
            phases[assign_phase(candidate)].append(candidate.ref)
        return phases

    def _recommendations(self, candidates: List[UnusedElementCandidate]) -> Dict[str, List[Dict[str, str]]]:
        return {
            'immediate': [
                c.ref for c in candidates
                if c.confidence == 'high' and c.recommended_action == 'remove' and c.priority == 'high'
            ],
            'investigate': [
                c.ref for c in candidates
                if c.confidence == 'medium' or c.recommended_action == 'investigate'
            ],
            'monitor': [
                c.ref for c in candidates
                if c.confidence == 'low' or c.priority == 'low'
            ],
        }

    def _potential_savings(self, candidates: List[UnusedElementCandidate]) -> Dict[str, Any]:
        tables = sum(1 for c in candidates if c.element_type == 'table')
        columns = sum(1 for c in candidates if c.element_type == 'column')
        indexes = sum(1 for c in candidates if c.element_type == 'index')
        return {
            'storage_bytes': tables * TABLE_STORAGE_BYTES + columns * COLUMN_STORAGE_BYTES,
            'index_count': indexes,
            'maintenance_complexity': round(len(candidates) * 0.1, 2),
        }

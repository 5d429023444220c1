"""Performance assessment: ranked optimization opportunities and projections."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ..config import DEFAULT_WHERE_THRESHOLD
from ..utils.logger import get_logger
from .drift import TABLE_BYTES, COLUMN_BYTES, INDEX_BYTES, DriftReport, unindexed_filter_columns
from .elements import SchemaMapping
from .unused_elements import UnusedElementsReport
from .usage_scanner import UsageReport

logger = get_logger(__name__)

EFFORT_SCORE = {'low': 1, 'medium': 2, 'high': 3}

OPPORTUNITY_TYPES = ('index_removal', 'schema_cleanup', 'query_optimization', 'index_addition')

# Reference system the projections are expressed against
BASELINE_STORAGE_BYTES = 1_000_000_000
BASELINE_QUERY_MS = 100
BASELINE_INDEX_COUNT = 50
BASELINE_MAINTENANCE_HOURS = 10

# (scenario, timeframe, realized fraction, assumptions)
SCENARIOS = (
    ('optimistic', '3_months', 1.0, (
        'All optimization opportunities implemented',
        'No new schema additions',
        'Optimal execution of changes',
    )),
    ('realistic', '6_months', 0.7, (
        '70% of optimizations implemented',
        'Some new features added',
        'Normal development pace',
    )),
    ('pessimistic', '1_year', 0.3, (
        'Only low-effort optimizations implemented',
        'Significant new features added',
        'Limited optimization resources',
    )),
)

CONTINUOUS_IMPROVEMENT = (
    'Monitor query performance regularly',
    'Review new index requirements monthly',
    'Analyze schema growth trends quarterly',
    'Conduct performance audits bi-annually',
)

# Index-removal savings per index
INDEX_REMOVAL_BYTES = 50_000
# Storage an added index costs
INDEX_ADDITION_BYTES = 30_000


@dataclass(frozen=True)
class OptimizationOpportunity:
    """A concrete improvement with estimated impact and cost."""
    type: str
    description: str
    elements: Tuple[str, ...]
    storage_reduction: int = 0
    query_speed_improvement: float = 0
    write_performance_improvement: float = 0
    maintenance_reduction: float = 0
    effort: str = 'low'
    risk: str = 'low'
    reversible: bool = True
    estimated_time: str = ''
    prerequisites: Tuple[str, ...] = ()
    checks: Tuple[str, ...] = ()
    rollback_plan: str = ''
    monitoring: Tuple[str, ...] = ()

    @property
    def impact_sum(self) -> float:
        return self.query_speed_improvement + self.write_performance_improvement

    @property
    def ranking_score(self) -> float:
        return self.impact_sum / EFFORT_SCORE[self.effort]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'description': self.description,
            'elements': list(self.elements),
            'estimated_impact': {
                'storage_reduction': self.storage_reduction,
                'query_speed_improvement': self.query_speed_improvement,
                'write_performance_improvement': self.write_performance_improvement,
                'maintenance_reduction': self.maintenance_reduction,
            },
            'implementation': {
                'effort': self.effort,
                'risk': self.risk,
                'reversible': self.reversible,
                'estimated_time': self.estimated_time,
            },
            'prerequisites': list(self.prerequisites),
            'validation': {
                'checks': list(self.checks),
                'rollback_plan': self.rollback_plan,
                'monitoring_requirements': list(self.monitoring),
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OptimizationOpportunity':
        impact = data.get('estimated_impact', {})
        implementation = data.get('implementation', {})
        validation = data.get('validation', {})
        return cls(
            type=data['type'],
            description=data['description'],
            elements=tuple(data.get('elements', ())),
            storage_reduction=impact.get('storage_reduction', 0),
            query_speed_improvement=impact.get('query_speed_improvement', 0),
            write_performance_improvement=impact.get('write_performance_improvement', 0),
            maintenance_reduction=impact.get('maintenance_reduction', 0),
            effort=implementation.get('effort', 'low'),
            risk=implementation.get('risk', 'low'),
            reversible=implementation.get('reversible', True),
            estimated_time=implementation.get('estimated_time', ''),
            prerequisites=tuple(data.get('prerequisites', ())),
            checks=tuple(validation.get('checks', ())),
            rollback_plan=validation.get('rollback_plan', ''),
            monitoring=tuple(validation.get('monitoring_requirements', ())),
        )


@dataclass
class PerformanceReport:
    """Stage output: opportunities, projections and an action plan."""
    opportunities: List[OptimizationOpportunity] = field(default_factory=list)
    projections: List[Dict[str, Any]] = field(default_factory=list)
    current_metrics: List[Dict[str, Any]] = field(default_factory=list)
    detailed_analysis: Dict[str, Any] = field(default_factory=dict)
    action_plan: Dict[str, List[str]] = field(default_factory=dict)
    overall_health_score: int = 100
    schema_health: int = 100
    warnings: List[str] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, Any]:
        critical = [
            o for o in self.opportunities
            if o.risk == 'high' or o.query_speed_improvement > 30
        ]
        potential = sum(o.impact_sum for o in self.opportunities)
        return {
            'total_opportunities': len(self.opportunities),
            'overall_health_score': self.overall_health_score,
            'schema_health': self.schema_health,
            'critical_issues': len(critical),
            'optimization_potential': round(min(potential, 100)),
            'estimated_savings': {
                'storage': sum(o.storage_reduction for o in self.opportunities),
                'performance': sum(o.query_speed_improvement for o in self.opportunities),
                'maintenance': sum(o.maintenance_reduction for o in self.opportunities),
            },
            'projections': len(self.projections),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary,
            'opportunities': [o.to_dict() for o in self.opportunities],
            'projections': [dict(p) for p in self.projections],
            'current_metrics': [dict(m) for m in self.current_metrics],
            'detailed_analysis': self.detailed_analysis,
            'action_plan': {k: list(v) for k, v in self.action_plan.items()},
            'overall_health_score': self.overall_health_score,
            'schema_health': self.schema_health,
            'warnings': list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PerformanceReport':
        return cls(
            opportunities=[OptimizationOpportunity.from_dict(o) for o in data.get('opportunities', [])],
            projections=[dict(p) for p in data.get('projections', [])],
            current_metrics=[dict(m) for m in data.get('current_metrics', [])],
            detailed_analysis=data.get('detailed_analysis', {}),
            action_plan={k: list(v) for k, v in data.get('action_plan', {}).items()},
            overall_health_score=data.get('overall_health_score', 100),
            schema_health=data.get('schema_health', 100),
            warnings=list(data.get('warnings', [])),
        )


def rank_opportunities(opportunities: List[OptimizationOpportunity]) -> List[OptimizationOpportunity]:
    """Highest impact per unit of effort first; ties keep their order."""
    return sorted(opportunities, key=lambda o: -o.ranking_score)


def bucket_action_plan(opportunities: List[OptimizationOpportunity]) -> Dict[str, List[str]]:
    """Place each opportunity in the first bucket whose predicate it satisfies.

    quick_wins: low effort and low risk; medium_term: medium effort or
    risk; long_term: high effort or risk.
    """
    plan = {'quick_wins': [], 'medium_term': [], 'long_term': []}
    for opportunity in opportunities:
        if opportunity.effort == 'low' and opportunity.risk == 'low':
            plan['quick_wins'].append(opportunity.type)
        elif opportunity.effort == 'medium' or opportunity.risk == 'medium':
            plan['medium_term'].append(opportunity.type)
        elif opportunity.effort == 'high' or opportunity.risk == 'high':
            plan['long_term'].append(opportunity.type)
    plan['continuous_improvement'] = list(CONTINUOUS_IMPROVEMENT)
    return plan


def project(opportunities: List[OptimizationOpportunity]) -> List[Dict[str, Any]]:
    """Baseline metrics after realizing each scenario's share of the opportunities."""
    storage = sum(o.storage_reduction for o in opportunities)
    query = sum(o.query_speed_improvement for o in opportunities)
    maintenance = sum(o.maintenance_reduction for o in opportunities)
    removable_indexes = sum(len(o.elements) for o in opportunities if o.type == 'index_removal')

    projections = []
    for scenario, timeframe, fraction, assumptions in SCENARIOS:
        projections.append({
            'scenario': scenario,
            'timeframe': timeframe,
            'realized_fraction': fraction,
            'metrics': {
                'storage_size': int(max(BASELINE_STORAGE_BYTES - storage * fraction, BASELINE_STORAGE_BYTES * 0.5)),
                'query_performance': round(
                    max(BASELINE_QUERY_MS * (1 - query * fraction / 100), BASELINE_QUERY_MS * 0.3), 2
                ),
                'index_count': max(BASELINE_INDEX_COUNT - int(removable_indexes * fraction), 10),
                'maintenance_effort': round(
                    max(BASELINE_MAINTENANCE_HOURS - maintenance * fraction, 2), 2
                ),
            },
            'assumptions': list(assumptions),
        })
    return projections


class PerformanceAssessor:
    """Turn drift and usage signals into prioritized optimization work."""

    def __init__(self, where_threshold: int = DEFAULT_WHERE_THRESHOLD):
        self.where_threshold = where_threshold

    def assess(
        self,
        mapping: SchemaMapping,
        usage: UsageReport,
        unused: UnusedElementsReport,
        drift: DriftReport,
    ) -> PerformanceReport:
        """Aggregate every earlier stage into a performance report.

        Args:
            mapping: Schema mapping with usage attached
            usage: Usage report
            unused: Unused-element report
            drift: Drift report

        Returns:
            PerformanceReport with opportunities ranked
        """
        opportunities = rank_opportunities(self._identify_opportunities(mapping, usage, unused, drift))
        detailed = self._detailed_analysis(mapping, usage, unused, drift)

        report = PerformanceReport(
            opportunities=opportunities,
            projections=project(opportunities),
            current_metrics=self._current_metrics(mapping, usage, unused, drift),
            detailed_analysis=detailed,
            action_plan=bucket_action_plan(opportunities),
            overall_health_score=self._overall_health(detailed),
            schema_health=drift.schema_health,
            warnings=list(drift.warnings),
        )
        logger.info("performance_assessed", opportunities=len(opportunities))
        return report

    def _identify_opportunities(
        self,
        mapping: SchemaMapping,
        usage: UsageReport,
        unused: UnusedElementsReport,
        drift: DriftReport,
    ) -> List[OptimizationOpportunity]:
        opportunities = []

        removable = drift.performance_analysis.get('index_efficiency', {}).get('redundant', [])
        if removable:
            n = len(removable)
            opportunities.append(OptimizationOpportunity(
                type='index_removal',
                description=f"Remove {n} unused or redundant indexes",
                elements=tuple(removable),
                storage_reduction=n * INDEX_REMOVAL_BYTES,
                write_performance_improvement=min(n * 2, 15),
                maintenance_reduction=n * 0.5,
                effort='low',
                risk='low',
                reversible=True,
                estimated_time=f"{n * 15} minutes",
                prerequisites=('Database backup', 'Performance baseline'),
                checks=('Monitor query performance', 'Check for performance regressions'),
                rollback_plan='Recreate indexes from saved definitions',
                monitoring=('Query execution times', 'Resource utilization'),
            ))

        tables = [c.element_name for c in unused.by_type('table')]
        if tables:
            n = len(tables)
            opportunities.append(OptimizationOpportunity(
                type='schema_cleanup',
                description=f"Remove {n} unused tables",
                elements=tuple(tables),
                storage_reduction=n * TABLE_BYTES,
                maintenance_reduction=n * 1,
                effort='medium',
                risk='medium',
                reversible=False,
                estimated_time=f"{n * 2} hours",
                prerequisites=('Complete usage verification', 'Stakeholder approval', 'Data backup'),
                checks=('Application functionality tests', 'Data integrity checks'),
                rollback_plan='Restore from backup (data loss possible)',
                monitoring=('Application errors', 'Missing table errors'),
            ))

        complex_patterns = [p for p in usage.patterns if p.complexity == 'complex']
        if complex_patterns:
            n = len(complex_patterns)
            contexts = list(dict.fromkeys(p.context[:50] for p in complex_patterns))
            opportunities.append(OptimizationOpportunity(
                type='query_optimization',
                description=f"Optimize {n} complex queries",
                elements=tuple(contexts),
                query_speed_improvement=min(n * 5, 40),
                effort='high',
                risk='medium',
                reversible=True,
                estimated_time=f"{n * 4} hours",
                prerequisites=('Query performance profiling', 'Test environment setup'),
                checks=('Performance benchmarks', 'Result correctness verification'),
                rollback_plan='Revert to original query implementations',
                monitoring=('Query execution times', 'Result accuracy'),
            ))

        filtered = [name for name, _ in unindexed_filter_columns(mapping, usage, self.where_threshold)]
        if filtered:
            n = len(filtered)
            opportunities.append(OptimizationOpportunity(
                type='index_addition',
                description=f"Add indexes for {n} frequently filtered columns",
                elements=tuple(filtered),
                storage_reduction=-n * INDEX_ADDITION_BYTES,
                query_speed_improvement=min(n * 10, 50),
                effort='low',
                risk='low',
                reversible=True,
                estimated_time=f"{n * 30} minutes",
                prerequisites=('Query pattern analysis', 'Storage capacity check'),
                checks=('Query performance improvement', 'Index usage verification'),
                rollback_plan='Drop newly created indexes',
                monitoring=('Index usage statistics', 'Query performance'),
            ))

        return opportunities

    def _current_metrics(
        self,
        mapping: SchemaMapping,
        usage: UsageReport,
        unused: UnusedElementsReport,
        drift: DriftReport,
    ) -> List[Dict[str, Any]]:
        utilization = round(drift.index_utilization * 100, 2)
        bloat = self._bloat_score(mapping, unused)
        total = len(usage.patterns)
        complex_count = sum(1 for p in usage.patterns if p.complexity == 'complex')
        complexity = round(complex_count / total * 100, 2) if total else 0
        total_storage = self._total_storage(mapping)
        waste = unused.potential_savings.get('storage_bytes', 0)
        efficiency = round((total_storage - waste) / total_storage * 100, 2) if total_storage else 100

        return [
            {
                'metric': 'index_utilization_rate',
                'current_value': utilization,
                'unit': '%',
                'impact': 'positive' if utilization > 80 else 'negative',
                'recommendation': 'Good index utilization' if utilization >= 80 else 'Remove unused indexes',
            },
            {
                'metric': 'schema_bloat_factor',
                'current_value': bloat,
                'unit': '%',
                'impact': 'positive' if bloat < 10 else 'negative',
                'recommendation': 'Significant cleanup needed' if bloat > 15 else 'Acceptable bloat level',
            },
            {
                'metric': 'query_complexity_score',
                'current_value': complexity,
                'unit': '%',
                'impact': 'positive' if complexity < 20 else 'negative',
                'recommendation': 'Optimize complex queries' if complexity > 30 else 'Good query complexity',
            },
            {
                'metric': 'storage_efficiency',
                'current_value': efficiency,
                'unit': '%',
                'impact': 'positive' if efficiency > 90 else 'negative',
                'recommendation': 'Clean up unused elements' if efficiency < 85 else 'Good storage efficiency',
            },
        ]

    def _detailed_analysis(
        self,
        mapping: SchemaMapping,
        usage: UsageReport,
        unused: UnusedElementsReport,
        drift: DriftReport,
    ) -> Dict[str, Any]:
        efficiency = drift.performance_analysis.get('index_efficiency', {})
        total_queries = len(usage.patterns)
        complex_queries = sum(1 for p in usage.patterns if p.complexity == 'complex')
        bloat = self._bloat_score(mapping, unused)
        risky = sum(
            1 for c in unused.candidates
            if c.recommended_action == 'investigate' or c.confidence == 'low'
        )
        complex_share = complex_queries / total_queries * 50 if total_queries else 0

        return {
            'index_analysis': {
                'total_indexes': len(mapping.indexes),
                'used_indexes': len(efficiency.get('well_utilized', [])),
                'redundant_indexes': list(efficiency.get('redundant', [])),
            },
            'query_analysis': {
                'total_queries': total_queries,
                'complex_queries': complex_queries,
                'raw_sql_queries': len(usage.query_analyses),
                'slow_queries': [
                    {
                        'pattern': p.context[:100],
                        'file': p.file,
                        'line': p.line,
                        'optimization': 'Consider query restructuring or adding indexes',
                    }
                    for p in usage.patterns if p.complexity == 'complex'
                ],
            },
            'schema_analysis': {
                'bloat_score': bloat,
                'unused_elements': len(unused.candidates),
                'migration_complexity': 'high' if risky > 10 else 'medium' if risky > 5 else 'low',
                'technical_debt': round(min(bloat + complex_share, 100), 2),
            },
        }

    def _overall_health(self, detailed: Dict[str, Any]) -> int:
        indexes = detailed['index_analysis']
        queries = detailed['query_analysis']
        index_health = (
            indexes['used_indexes'] / indexes['total_indexes'] * 100 if indexes['total_indexes'] else 100
        )
        schema_health = 100 - detailed['schema_analysis']['bloat_score']
        query_health = 100 - queries['complex_queries'] / max(queries['total_queries'], 1) * 100
        return round((index_health + schema_health + query_health) / 3)

    def _bloat_score(self, mapping: SchemaMapping, unused: UnusedElementsReport) -> float:
        total = len(mapping.tables) + len(mapping.columns) + len(mapping.indexes) + len(mapping.enums)
        return round(len(unused.candidates) / total * 100, 2) if total else 0

    def _total_storage(self, mapping: SchemaMapping) -> int:
        return (
            len(mapping.tables) * TABLE_BYTES
            + len(mapping.columns) * COLUMN_BYTES
            + len(mapping.indexes) * INDEX_BYTES
        )

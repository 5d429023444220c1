"""Tests for the performance assessor."""
import pytest

from schemadrift.analyzer.drift import DriftReport
from schemadrift.analyzer.elements import SchemaMapping
from schemadrift.analyzer.performance import (
    CONTINUOUS_IMPROVEMENT,
    OptimizationOpportunity,
    PerformanceAssessor,
    PerformanceReport,
    bucket_action_plan,
    project,
    rank_opportunities,
)
from schemadrift.analyzer.pipeline import run_pipeline
from schemadrift.analyzer.unused_elements import UnusedElementsReport
from schemadrift.analyzer.usage_scanner import UsagePattern, UsageReport


def opportunity(kind, effort='low', risk='low', speed=0, write=0, **kwargs):
    return OptimizationOpportunity(
        type=kind, description=kind, elements=kwargs.pop('elements', ()),
        query_speed_improvement=speed, write_performance_improvement=write,
        effort=effort, risk=risk, **kwargs,
    )


def complex_pattern(context, line):
    return UsagePattern(
        element_name='orders', element_type='table', file='src/report.ts', line=line, column=0,
        operation='select', complexity='complex', dynamic=False, confidence='high', context=context,
    )


@pytest.fixture
def result(brewery_config):
    return run_pipeline(brewery_config)


class TestRanking:
    """Opportunities are ranked by impact per unit of effort."""

    def test_score_order(self):
        ranked = rank_opportunities([
            opportunity('a', effort='high', speed=30),   # 10
            opportunity('b', effort='low', write=12),    # 12
            opportunity('c', effort='medium', speed=10),  # 5
        ])
        assert [o.type for o in ranked] == ['b', 'a', 'c']

    def test_ties_keep_order(self):
        ranked = rank_opportunities([
            opportunity('first', effort='medium', speed=4),
            opportunity('second', effort='low', speed=2),
            opportunity('third', effort='high', speed=1),
        ])
        assert [o.type for o in ranked] == ['first', 'second', 'third']


class TestActionPlan:
    """Bucket assignment, first match wins."""

    def test_buckets(self):
        plan = bucket_action_plan([
            opportunity('quick'),
            opportunity('risky_but_easy', risk='medium'),
            opportunity('hard', effort='high', risk='medium'),
            opportunity('slow', effort='high', risk='high'),
        ])
        assert plan['quick_wins'] == ['quick']
        assert plan['medium_term'] == ['risky_but_easy', 'hard']
        assert plan['long_term'] == ['slow']
        assert plan['continuous_improvement'] == list(CONTINUOUS_IMPROVEMENT)


class TestProjections:
    """Scenario projections against the baseline system."""

    def test_no_opportunities_is_baseline(self):
        projections = project([])
        assert [p['scenario'] for p in projections] == ['optimistic', 'realistic', 'pessimistic']
        for p in projections:
            assert p['metrics'] == {
                'storage_size': 1_000_000_000,
                'query_performance': 100,
                'index_count': 50,
                'maintenance_effort': 10,
            }

    def test_floors(self):
        huge = opportunity(
            'index_removal', speed=500, elements=tuple(f"idx_{i}" for i in range(200)),
            storage_reduction=5_000_000_000, maintenance_reduction=100,
        )
        metrics = project([huge])[0]['metrics']
        assert metrics == {
            'storage_size': 500_000_000,
            'query_performance': 30.0,
            'index_count': 10,
            'maintenance_effort': 2,
        }

    def test_fraction_scales_savings(self):
        removal = opportunity('index_removal', elements=('a', 'b'), storage_reduction=100_000, maintenance_reduction=1)
        by_scenario = {p['scenario']: p['metrics'] for p in project([removal])}
        assert by_scenario['optimistic']['index_count'] == 48
        assert by_scenario['realistic']['index_count'] == 49
        assert by_scenario['pessimistic']['index_count'] == 50
        assert by_scenario['realistic']['storage_size'] == 1_000_000_000 - 70_000


class TestBreweryAssessment:
    """Assessment of the brewery fixture."""

    def test_opportunities(self, result):
        opportunities = result.performance.opportunities
        assert [o.type for o in opportunities] == ['index_removal', 'schema_cleanup']
        assert opportunities[0].elements == ('orders_quantity_idx', 'orders_user_idx')
        assert opportunities[1].elements == ('legacyCoupons',)
        assert opportunities[1].storage_reduction == 100_000

    def test_action_plan(self, result):
        plan = result.performance.action_plan
        assert plan['quick_wins'] == ['index_removal']
        assert plan['medium_term'] == ['schema_cleanup']

    def test_summary(self, result):
        summary = result.performance.summary
        assert summary['total_opportunities'] == 2
        assert summary['critical_issues'] == 0
        assert summary['estimated_savings']['storage'] == 200_000
        assert summary['schema_health'] == result.drift.schema_health

    def test_current_metrics(self, result):
        metrics = {m['metric']: m['current_value'] for m in result.performance.current_metrics}
        assert metrics['index_utilization_rate'] == 75.0
        assert metrics['query_complexity_score'] == 0

    def test_health_bounds(self, result):
        assert 0 <= result.performance.overall_health_score <= 100

    def test_round_trip(self, result):
        report = result.performance
        assert PerformanceReport.from_dict(report.to_dict()).to_dict() == report.to_dict()


class TestQueryOptimization:
    """Complex usage patterns produce a query optimization opportunity."""

    def test_contexts_are_truncated_and_unique(self):
        long_context = 'db.select().from(orders).innerJoin(users, eq(orders.userId, users.id))'
        usage = UsageReport(patterns=[
            complex_pattern(long_context, 3),
            complex_pattern(long_context, 9),
        ])
        report = PerformanceAssessor().assess(SchemaMapping(), usage, UnusedElementsReport(), DriftReport())

        [optimization] = report.opportunities
        assert optimization.type == 'query_optimization'
        assert optimization.elements == (long_context[:50],)
        assert optimization.query_speed_improvement == 10
        assert optimization.estimated_time == '8 hours'
        assert report.action_plan['long_term'] == []
        assert report.action_plan['medium_term'] == ['query_optimization']
        assert len(report.detailed_analysis['query_analysis']['slow_queries']) == 2

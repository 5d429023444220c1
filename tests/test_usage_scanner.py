"""Tests for usage scanning over the brewery fixture and small tmp projects."""
import pytest

from schemadrift.analyzer.schema_mapper import SchemaMapper
from schemadrift.analyzer.usage_scanner import UsageReport, UsageScanner


def scan(config):
    mapping = SchemaMapper.from_config(config).map_project(config)
    return UsageScanner.from_config(config).scan_project(config, mapping)


@pytest.fixture
def report(brewery_config) -> UsageReport:
    return scan(brewery_config)


class TestPatterns:
    """Structural usage patterns."""

    def test_files_scanned(self, report):
        assert report.files_scanned == 2
        assert report.warnings == []

    def test_operations_per_column(self, report):
        operations = report.operations_by_element()
        assert operations[('column', 'users.email')] == {'select': 2, 'where': 1}
        assert operations[('column', 'orders.status')] == {'select': 2, 'update': 2}
        assert operations[('column', 'orders.id')] == {'orderby': 1, 'where': 2}

    def test_table_operations(self, report):
        operations = report.operations_by_element()[('table', 'orders')]
        assert operations['import'] == 1
        assert operations['reference'] == 1
        assert operations['update'] == 2

    def test_update_payload_confidence(self, report):
        payload = [
            p for p in report.patterns_for('column', 'orders.status') if p.operation == 'update'
        ]
        assert [p.line for p in payload] == [21, 25]
        assert all(p.confidence == 'low' for p in payload)

    def test_chain_complexity(self, report):
        select_patterns = report.patterns_for('column', 'orders.quantity')
        assert {p.complexity for p in select_patterns} == {'medium'}
        imports = [p for p in report.patterns_for('table', 'users') if p.operation == 'import']
        assert imports[0].complexity == 'simple'

    def test_pattern_locations(self, report):
        first = report.patterns[0]
        assert (first.element_type, first.element_name) == ('table', 'orders')
        assert (first.file, first.line, first.column) == ('apps/web/src/orders.ts', 3, 10)

    def test_context(self, report):
        pattern = next(
            p for p in report.patterns_for('table', 'orders') if p.operation == 'reference'
        )
        assert pattern.context.startswith('db .select(')
        assert pattern.context.endswith('.from(orders)')


class TestTextualSignals:
    """SQL literals and enum values, kept apart from the structural patterns."""

    def test_query_analysis(self, report):
        assert len(report.query_analyses) == 1
        analysis = report.query_analyses[0]
        assert analysis.file == 'apps/web/src/reports.ts'
        assert analysis.line == 6
        assert analysis.tables == ['orders', 'shipments']
        assert analysis.columns == ['quantity', 'status']
        assert analysis.complexity_score == 5
        assert analysis.dynamic is True

    def test_enum_value_hits(self, report):
        assert report.enum_value_hits == {'orderStatus': ['shipped', 'cancelled']}


class TestSummary:
    """Summary counts always match detail lengths."""

    def test_counts(self, report):
        summary = report.summary
        assert summary['total_usages'] == len(report.patterns)
        assert sum(summary['by_operation'].values()) == len(report.patterns)
        assert sum(summary['by_complexity'].values()) == len(report.patterns)
        assert sum(summary['by_confidence'].values()) == len(report.patterns)
        assert summary['query_analyses'] == len(report.query_analyses)
        assert summary['referenced_elements']['table'] == 2

    def test_round_trip(self, report):
        assert UsageReport.from_dict(report.to_dict()).to_dict() == report.to_dict()


class TestPartialFailure:
    """Unreadable or malformed files are reported, not fatal."""

    def test_malformed_source_skipped(self, make_project):
        config = make_project({
            'packages/db/src/schema.ts': 'export const items = pgTable("items", { sku: text("sku") });\n',
            'packages/api/src/good.ts': 'export const rows = () => db.select().from(items);\n',
            'packages/api/src/broken.ts': 'export const = items.(;\n',
        })
        report = scan(config)
        assert report.files_scanned == 1
        assert len(report.warnings) == 1
        assert report.warnings[0].startswith('Skipped packages/api/src/broken.ts: Syntax error in')
        assert report.summary['files_skipped'] == 1
        assert [p.element_name for p in report.patterns] == ['items']

    def test_empty_schema_scans_nothing(self, make_project):
        config = make_project({'packages/api/src/a.ts': 'export const orders = 1;\n'})
        report = scan(config)
        assert report.patterns == []
        assert report.files_scanned == 1

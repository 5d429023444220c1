"""Tests for the pure classifiers; chains are built by hand, no parsing involved."""
import pytest

from schemadrift.analyzer.classify import (
    best_confidence,
    classify_confidence,
    classify_operation,
    complexity_tier,
    is_dynamic,
)
from schemadrift.analyzer.extractor import NodeKind, NodeView

ARGS = NodeView(NodeKind.OTHER, 'arguments')
MEMBER = NodeView(NodeKind.MEMBER, 'member_expression')
STATEMENT = NodeView(NodeKind.STATEMENT, 'expression_statement')
PROGRAM = NodeView(NodeKind.PROGRAM, 'program')
DECLARATOR = NodeView(NodeKind.VARIABLE_DECLARATOR, 'variable_declarator')
BINARY = NodeView(NodeKind.BINARY, 'binary_expression')
IMPORT = NodeView(NodeKind.IMPORT, 'import_specifier')
FUNCTION = NodeView(NodeKind.FUNCTION, 'arrow_function')


def call(name, member=True):
    return NodeView(NodeKind.CALL, 'call_expression', name, member)


class TestClassifyOperation:
    """Nearest recognized method call wins."""

    @pytest.mark.parametrize('method,operation', [
        ('select', 'select'),
        ('findMany', 'select'),
        ('insert', 'insert'),
        ('values', 'insert'),
        ('update', 'update'),
        ('set', 'update'),
        ('delete', 'delete'),
        ('where', 'where'),
        ('orderBy', 'orderby'),
        ('leftJoin', 'join'),
        ('innerJoin', 'join'),
        ('from', 'reference'),
    ])
    def test_method_mapping(self, method, operation):
        assert classify_operation((ARGS, call(method), STATEMENT, PROGRAM)) == operation

    def test_nearest_call_wins(self):
        chain = (ARGS, call('eq', member=False), ARGS, call('where'), MEMBER, call('orderBy'), STATEMENT)
        assert classify_operation(chain) == 'where'

    def test_unrecognized_calls_are_skipped(self):
        chain = (ARGS, call('map'), MEMBER, call('select'), STATEMENT)
        assert classify_operation(chain) == 'select'

    def test_plain_function_named_like_method_is_not_a_query(self):
        assert classify_operation((ARGS, call('select', member=False), STATEMENT)) == 'reference'

    def test_import(self):
        assert classify_operation((IMPORT, NodeView(NodeKind.OTHER, 'named_imports'), PROGRAM)) == 'import'

    def test_reference_fallback(self):
        assert classify_operation((DECLARATOR, STATEMENT, PROGRAM)) == 'reference'


class TestClassifyConfidence:
    """First matching rule wins."""

    @pytest.mark.parametrize('method', ['select', 'insert', 'update', 'delete', 'from'])
    def test_high_inside_query_calls(self, method):
        assert classify_confidence((ARGS, call(method), STATEMENT)) == 'high'

    def test_high_beats_member_parent(self):
        assert classify_confidence((MEMBER, ARGS, call('select'), STATEMENT)) == 'high'

    def test_high_reaches_through_callback(self):
        """A handler passed to a method named like an operation is rated high throughout."""
        chain = (MEMBER, STATEMENT, FUNCTION, ARGS, call('delete'), STATEMENT, PROGRAM)
        assert classify_confidence(chain) == 'high'

    def test_medium_for_property_access(self):
        assert classify_confidence((MEMBER, ARGS, call('where'), STATEMENT)) == 'medium'

    def test_medium_for_declarator(self):
        assert classify_confidence((DECLARATOR, STATEMENT, PROGRAM)) == 'medium'

    def test_medium_for_binary(self):
        assert classify_confidence((BINARY, ARGS, STATEMENT)) == 'medium'

    def test_declarator_outside_statement_ignored(self):
        chain = (ARGS, call('log'), STATEMENT, FUNCTION, DECLARATOR, STATEMENT)
        assert classify_confidence(chain) == 'low'

    def test_low_for_import(self):
        assert classify_confidence((IMPORT, PROGRAM)) == 'low'

    def test_adding_query_call_never_lowers(self):
        """Wrapping a reference in a query call can only raise its tier."""
        base = (DECLARATOR, STATEMENT)
        wrapped = (ARGS, call('select')) + base
        ranks = {'low': 0, 'medium': 1, 'high': 2}
        assert ranks[classify_confidence(wrapped)] >= ranks[classify_confidence(base)]


class TestComplexity:
    """Hop buckets."""

    @pytest.mark.parametrize('hops,tier', [
        (0, 'simple'), (2, 'simple'), (3, 'medium'), (5, 'medium'), (6, 'complex'),
    ])
    def test_tiers(self, hops, tier):
        assert complexity_tier(hops) == tier


class TestDynamic:
    """Interpolation markers."""

    @pytest.mark.parametrize('text', [
        'sql`SELECT * FROM t WHERE id = ${id}`',
        "'a'.concat(b)",
        'SELECT * FROM t WHERE id = ?',
        'SELECT * FROM t WHERE id = $1',
    ])
    def test_dynamic(self, text):
        assert is_dynamic(text)

    def test_static(self):
        assert not is_dynamic('db.select().from(orders)')


class TestBestConfidence:
    """Highest tier wins."""

    def test_best(self):
        assert best_confidence(['low', 'high', 'medium']) == 'high'

    def test_empty(self):
        assert best_confidence([]) is None

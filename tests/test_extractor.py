"""Tests for node visiting, ancestor materialization and snippet helpers."""
from conftest import parse_ts

from schemadrift.analyzer.extractor import (
    MAX_CONTEXT_LENGTH,
    NodeKind,
    ancestor_chain,
    call_arguments,
    call_chain_hops,
    callee_of,
    context_snippet,
    first_string_argument,
    iter_nodes,
    literal_text,
    location_of,
    node_text,
)


def find(result, node_type, text=None, nth=0):
    """The nth node of a type (optionally with exact text) in source order."""
    matches = [
        n for n in iter_nodes(result.root)
        if n.type == node_type and (text is None or node_text(n) == text)
    ]
    return matches[nth]


class TestTraversal:
    """iter_nodes and location_of."""

    def test_source_order(self):
        result = parse_ts("const a = 1;\nconst b = 2;\n")
        names = [node_text(n) for n in iter_nodes(result.root) if n.type == 'identifier']
        assert names == ['a', 'b']

    def test_locations_are_one_based(self):
        result = parse_ts("const a = 1;\n  const b = 2;\n")
        assert location_of(find(result, 'identifier', 'a')) == (1, 7)
        assert location_of(find(result, 'identifier', 'b')) == (2, 9)


class TestCalls:
    """callee_of and argument helpers."""

    def test_member_call(self):
        result = parse_ts("q.where(x);")
        assert callee_of(find(result, 'call_expression')) == ('where', True)

    def test_plain_call(self):
        result = parse_ts("eq(a, b);")
        assert callee_of(find(result, 'call_expression')) == ('eq', False)

    def test_first_string_argument(self):
        result = parse_ts('pgTable("orders", {});')
        assert first_string_argument(find(result, 'call_expression')) == 'orders'

    def test_first_argument_not_a_string(self):
        result = parse_ts('pgTable(name, {});')
        assert first_string_argument(find(result, 'call_expression')) is None

    def test_call_arguments(self):
        result = parse_ts('f(a, "b", 3);')
        args = call_arguments(find(result, 'call_expression'))
        assert [a.type for a in args] == ['identifier', 'string', 'number']


class TestAncestorChain:
    """Materialized NodeView chains."""

    def test_nearest_first(self):
        result = parse_ts("db.select().from(orders);")
        chain = ancestor_chain(find(result, 'identifier', 'orders'))
        assert chain[0].kind is NodeKind.OTHER  # arguments
        assert chain[1].kind is NodeKind.CALL
        assert chain[1].callee == 'from'
        assert chain[1].member_call is True
        assert chain[-1].kind is NodeKind.PROGRAM

    def test_import_specifier(self):
        result = parse_ts('import { orders } from "./schema";')
        chain = ancestor_chain(find(result, 'identifier', 'orders'))
        assert chain[0].kind is NodeKind.IMPORT

    def test_reexport_is_import(self):
        result = parse_ts('export { orders } from "./schema";')
        chain = ancestor_chain(find(result, 'identifier', 'orders'))
        assert any(view.kind is NodeKind.IMPORT for view in chain)

    def test_member_parent(self):
        result = parse_ts("const s = orders.status;")
        chain = ancestor_chain(find(result, 'property_identifier', 'status'))
        assert chain[0].kind is NodeKind.MEMBER
        assert any(view.kind is NodeKind.VARIABLE_DECLARATOR for view in chain)


class TestContext:
    """Context snippets."""

    def test_snippet_is_enclosing_call(self):
        result = parse_ts("db.select().from(orders);")
        assert context_snippet(find(result, 'identifier', 'orders')) == 'db.select().from(orders)'

    def test_whitespace_collapsed(self):
        result = parse_ts("eq(\n    orders.id,\n    other\n);")
        assert context_snippet(find(result, 'property_identifier', 'id')) == 'eq( orders.id, other )'

    def test_snippet_truncated(self):
        long_args = ', '.join(f'argument{i}' for i in range(40))
        result = parse_ts(f"f(orders, {long_args});")
        snippet = context_snippet(find(result, 'identifier', 'orders'))
        assert len(snippet) == MAX_CONTEXT_LENGTH

    def test_falls_back_to_token(self):
        result = parse_ts("orders;")
        assert context_snippet(find(result, 'identifier', 'orders')) == 'orders'


class TestCallChainHops:
    """Chained query length."""

    def test_four_hop_chain(self):
        result = parse_ts("db.select().from(orders).where(x).orderBy(y);")
        assert call_chain_hops(find(result, 'identifier', 'orders')) == 4

    def test_same_length_from_any_link(self):
        result = parse_ts("db.select().from(orders).where(eq(orders.id, 1));")
        first = call_chain_hops(find(result, 'identifier', 'orders', 0))
        second = call_chain_hops(find(result, 'identifier', 'orders', 1))
        assert first == second == 3

    def test_not_in_chain(self):
        result = parse_ts("const x = orders;")
        assert call_chain_hops(find(result, 'identifier', 'orders')) == 0


class TestLiterals:
    """literal_text."""

    def test_string(self):
        result = parse_ts('const a = "pending";')
        assert literal_text(find(result, 'string')) == 'pending'

    def test_template_keeps_substitutions(self):
        result = parse_ts('const q = `SELECT * FROM t WHERE id = ${id}`;')
        assert literal_text(find(result, 'template_string')) == 'SELECT * FROM t WHERE id = ${id}'

    def test_non_literal(self):
        result = parse_ts('const a = 1;')
        assert literal_text(find(result, 'number')) is None

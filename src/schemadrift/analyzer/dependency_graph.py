"""Dependency graph between schema elements using NetworkX.

Nodes are ``"type:name"`` identifiers. An edge (A, B) means "A depends on B":
a column depends on its table, a foreign-key column on the referenced table,
an enum-typed column on its enum, and an index on its table and the columns
it covers. Removing B therefore breaks every ancestor of B.
"""
from typing import Dict, List, Set, Tuple

import networkx as nx

from .elements import ElementKey, SchemaMapping

# Edge kinds
MEMBER_OF = 'member_of'
FOREIGN_KEY = 'foreign_key'
ENUM_TYPE = 'enum_type'
INDEXES = 'indexes'
COVERS = 'covers'


def node_id(key: ElementKey) -> str:
    return f"{key[0]}:{key[1]}"


class SchemaDependencyGraph:
    """Directed dependency graph built from a schema mapping."""

    def __init__(self, mapping: SchemaMapping):
        self.graph = nx.DiGraph()
        self._dangling: List[Tuple[str, str]] = []
        self._build(mapping)

    def _build(self, mapping: SchemaMapping):
        for element in mapping.elements():
            self.graph.add_node(node_id(element.key), type=element.type, name=element.name, declared=True)

        for column in mapping.columns.values():
            source = node_id(column.key)
            table = column.metadata.get('table_name')
            if table in mapping.tables:
                self.graph.add_edge(source, node_id(('table', table)), kind=MEMBER_OF)

            target = column.metadata.get('references_table')
            if target:
                target_id = node_id(('table', target))
                if target not in mapping.tables:
                    self.graph.add_node(target_id, type='table', name=target, declared=False)
                    self._dangling.append((column.name, target))
                if target != table:
                    self.graph.add_edge(source, target_id, kind=FOREIGN_KEY)

            enum_name = column.metadata.get('enum_type')
            if enum_name in mapping.enums:
                self.graph.add_edge(source, node_id(('enum', enum_name)), kind=ENUM_TYPE)

        for index in mapping.indexes.values():
            source = node_id(index.key)
            table = index.metadata.get('table_name')
            if table in mapping.tables:
                self.graph.add_edge(source, node_id(('table', table)), kind=INDEXES)
            for column_key in index.metadata.get('columns', []):
                if column_key in mapping.columns:
                    self.graph.add_edge(source, node_id(('column', column_key)), kind=COVERS)

    def dependents(self, key: ElementKey, kinds: Set[str] | None = None) -> List[str]:
        """Direct dependents of an element, optionally restricted to edge kinds.

        Returns:
            Sorted element names (compound keys for columns)
        """
        target = node_id(key)
        if target not in self.graph:
            return []
        names = set()
        for source, _, kind in self.graph.in_edges(target, data='kind'):
            if kinds is None or kind in kinds:
                names.add(self.graph.nodes[source]['name'])
        return sorted(names)

    def blast_radius(self, key: ElementKey) -> List[str]:
        """Everything that transitively depends on an element, as sorted node ids."""
        target = node_id(key)
        if target not in self.graph:
            return []
        return sorted(nx.ancestors(self.graph, target))

    def dangling_references(self) -> List[Tuple[str, str]]:
        """(column key, missing table) for foreign keys to undeclared tables."""
        return list(self._dangling)

    def foreign_key_counts(self) -> Dict[str, int]:
        """Incoming foreign-key count per declared table."""
        counts = {}
        for node, data in self.graph.nodes(data=True):
            if data.get('type') == 'table' and data.get('declared'):
                counts[data['name']] = sum(
                    1 for _, _, kind in self.graph.in_edges(node, data='kind') if kind == FOREIGN_KEY
                )
        return counts

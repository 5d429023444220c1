"""Pure classification rules over materialized ancestor chains.

Every function here takes plain data (``NodeView`` tuples, ints, strings)
so the rules can be tested without parsing anything.
"""
import re
from typing import Iterable, Optional, Sequence

from .extractor import NodeKind, NodeView

# Method name -> operation kind
OPERATION_METHODS = {
    'select': 'select',
    'findFirst': 'select',
    'findMany': 'select',
    'insert': 'insert',
    'create': 'insert',
    'values': 'insert',
    'update': 'update',
    'set': 'update',
    'delete': 'delete',
    'from': 'reference',
    'where': 'where',
    'orderBy': 'orderby',
    'join': 'join',
    'leftJoin': 'join',
    'rightJoin': 'join',
    'innerJoin': 'join',
    'fullJoin': 'join',
}

OPERATION_KINDS = (
    'select', 'insert', 'update', 'delete', 'join',
    'where', 'orderby', 'reference', 'import',
)

# Calls whose receiver or arguments count as direct query usage
HIGH_CONFIDENCE_METHODS = {'select', 'insert', 'update', 'delete', 'from'}

CONFIDENCE_TIERS = ('high', 'medium', 'low')
CONFIDENCE_RANK = {'low': 0, 'medium': 1, 'high': 2}

COMPLEXITY_TIERS = ('simple', 'medium', 'complex')

_BOUNDARY_KINDS = {NodeKind.STATEMENT, NodeKind.FUNCTION, NodeKind.IMPORT, NodeKind.PROGRAM}

_PLACEHOLDER = re.compile(r'\$\d+')


def classify_operation(chain: Sequence[NodeView]) -> str:
    """Operation kind of a reference, from its ancestors (nearest first).

    The nearest method call with a recognized name wins. An import ancestor
    met before any such call makes the reference an import.

    Returns:
        One of OPERATION_KINDS
    """
    for view in chain:
        if view.kind is NodeKind.CALL and view.member_call and view.callee in OPERATION_METHODS:
            return OPERATION_METHODS[view.callee]
        if view.kind is NodeKind.IMPORT:
            return 'import'
    return 'reference'


def classify_confidence(chain: Sequence[NodeView]) -> str:
    """Confidence tier of a reference, first matching rule wins.

    1. high: inside a select/insert/update/delete/from method call
    2. medium: the parent is a property access, or a variable declarator or
       binary expression encloses it within the same statement
    3. low: otherwise
    """
    for view in chain:
        if view.kind is NodeKind.CALL and view.member_call and view.callee in HIGH_CONFIDENCE_METHODS:
            return 'high'

    if chain and chain[0].kind is NodeKind.MEMBER:
        return 'medium'

    for view in chain:
        if view.kind in (NodeKind.VARIABLE_DECLARATOR, NodeKind.BINARY):
            return 'medium'
        if view.kind in _BOUNDARY_KINDS:
            break
    return 'low'


def complexity_tier(hops: int) -> str:
    """Bucket a chained-call length: <=2 simple, <=5 medium, else complex."""
    if hops <= 2:
        return 'simple'
    if hops <= 5:
        return 'medium'
    return 'complex'


def is_dynamic(text: str) -> bool:
    """Heuristic check for interpolated or parameterized query text.

    Flags template interpolation (``${``), string concatenation calls,
    ``?`` placeholders and ``$1``-style positional parameters. Over-flags
    optional chaining and ternaries.
    """
    if '${' in text or 'concat' in text or '?' in text:
        return True
    return _PLACEHOLDER.search(text) is not None


def best_confidence(tiers: Iterable[str]) -> Optional[str]:
    """Highest tier among the given ones, or None when there are none."""
    best = None
    for tier in tiers:
        if best is None or CONFIDENCE_RANK[tier] > CONFIDENCE_RANK[best]:
            best = tier
    return best

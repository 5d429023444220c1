"""Node visiting and location resolution over tree-sitter syntax trees.

Classification logic never touches live tree-sitter nodes. Instead, the
ancestors of a matched token are materialized into a tuple of frozen
``NodeView`` records (nearest ancestor first) and handed to the pure
functions in ``classify``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Tuple

from tree_sitter import Node

# Context snippets never exceed this many characters
MAX_CONTEXT_LENGTH = 150

# Ancestors inspected when choosing the context node
CONTEXT_DEPTH = 3

CALL_TYPES = {'call_expression', 'new_expression'}

FUNCTION_TYPES = {
    'function_declaration', 'function_expression', 'function',
    'arrow_function', 'method_definition',
    'generator_function_declaration', 'generator_function',
}

IMPORT_TYPES = {'import_statement', 'import_clause', 'import_specifier', 'namespace_import'}

STATEMENT_TYPES = {
    'expression_statement', 'return_statement', 'if_statement',
    'for_statement', 'for_in_statement', 'while_statement', 'do_statement',
    'switch_statement', 'try_statement', 'throw_statement',
    'statement_block', 'lexical_declaration', 'variable_declaration',
    'class_declaration', 'export_statement',
}

REFERENCE_TOKEN_TYPES = {
    'identifier', 'property_identifier',
    'shorthand_property_identifier', 'shorthand_property_identifier_pattern',
}


class NodeKind(Enum):
    """Coarse syntactic category of a node, as seen by the classifiers."""
    CALL = 'call'
    MEMBER = 'member'
    IDENTIFIER = 'identifier'
    IMPORT = 'import'
    VARIABLE_DECLARATOR = 'variable_declarator'
    BINARY = 'binary'
    FUNCTION = 'function'
    STATEMENT = 'statement'
    PROGRAM = 'program'
    OTHER = 'other'


@dataclass(frozen=True)
class NodeView:
    """Plain-data snapshot of one syntax node.

    ``callee`` is set for CALL nodes: the method name when the callee is a
    property access (``member_call`` True), otherwise the called identifier.
    """
    kind: NodeKind
    node_type: str
    callee: Optional[str] = None
    member_call: bool = False


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ''
    return node.text.decode('utf-8', errors='replace')


def iter_nodes(root: Node) -> Iterator[Node]:
    """Iteratively traverse a tree in source order.

    Args:
        root: Node to start traversal

    Yields:
        Every node under (and including) root
    """
    stack = [root]
    while stack:
        current = stack.pop()
        yield current
        # Add children in reverse order to maintain left-to-right traversal
        stack.extend(reversed(current.children))


def location_of(node: Node) -> Tuple[int, int]:
    """1-based (line, column) of a node's first character."""
    row, column = node.start_point
    return row + 1, column + 1


def callee_of(call: Node) -> Tuple[Optional[str], bool]:
    """Name the target of a call expression.

    Returns:
        (name, is_member): ``("where", True)`` for ``q.where(...)``,
        ``("eq", False)`` for ``eq(...)``, ``(None, False)`` otherwise
    """
    function = call.child_by_field_name('function')
    if function is None:
        function = call.child_by_field_name('constructor')
    if function is None:
        return None, False
    if function.type == 'member_expression':
        prop = function.child_by_field_name('property')
        return (node_text(prop) or None), True
    if function.type == 'identifier':
        return node_text(function), False
    return None, False


def kind_of(node: Node) -> NodeKind:
    node_type = node.type
    if node_type in CALL_TYPES:
        return NodeKind.CALL
    if node_type in ('member_expression', 'subscript_expression'):
        return NodeKind.MEMBER
    if node_type in REFERENCE_TOKEN_TYPES:
        return NodeKind.IDENTIFIER
    if node_type in IMPORT_TYPES:
        return NodeKind.IMPORT
    if node_type == 'export_statement' and node.child_by_field_name('source') is not None:
        # export { x } from "./schema" is a re-export, i.e. an import
        return NodeKind.IMPORT
    if node_type == 'variable_declarator':
        return NodeKind.VARIABLE_DECLARATOR
    if node_type == 'binary_expression':
        return NodeKind.BINARY
    if node_type in FUNCTION_TYPES:
        return NodeKind.FUNCTION
    if node_type in STATEMENT_TYPES:
        return NodeKind.STATEMENT
    if node_type == 'program':
        return NodeKind.PROGRAM
    return NodeKind.OTHER


def view_of(node: Node) -> NodeView:
    kind = kind_of(node)
    if kind is NodeKind.CALL:
        callee, member_call = callee_of(node)
        return NodeView(kind, node.type, callee, member_call)
    return NodeView(kind, node.type)


def ancestor_chain(node: Node) -> Tuple[NodeView, ...]:
    """Materialize the ancestors of a node, nearest first, up to the root."""
    views = []
    current = node.parent
    while current is not None:
        views.append(view_of(current))
        current = current.parent
    return tuple(views)


def context_node(node: Node) -> Node:
    """Nearest call or function ancestor within CONTEXT_DEPTH levels, else the node."""
    current = node.parent
    for _ in range(CONTEXT_DEPTH):
        if current is None:
            break
        if current.type in CALL_TYPES or current.type in FUNCTION_TYPES:
            return current
        current = current.parent
    return node


def context_snippet(node: Node) -> str:
    """Whitespace-collapsed text of the context node, at most MAX_CONTEXT_LENGTH chars."""
    text = ' '.join(node_text(context_node(node)).split())
    return text[:MAX_CONTEXT_LENGTH]


def _is_boundary(node: Node) -> bool:
    return node.type in STATEMENT_TYPES or node.type in FUNCTION_TYPES or node.type == 'program'


def _member_call_object(call: Node) -> Optional[Node]:
    function = call.child_by_field_name('function')
    if function is None or function.type != 'member_expression':
        return None
    return function.child_by_field_name('object')


def call_chain_hops(node: Node) -> int:
    """Length of the chained-call sequence the node takes part in.

    Finds the nearest enclosing method call within the node's statement,
    climbs to the outermost call of that chain, then follows the receiver
    links back down counting consecutive method calls. For
    ``db.select().from(orders).where(x)`` this is 3.

    Returns:
        Number of method-call hops (0 when the node is not inside a call chain)
    """
    call = None
    current = node.parent
    while current is not None and not _is_boundary(current):
        if current.type == 'call_expression' and _member_call_object(current) is not None:
            call = current
            break
        current = current.parent
    if call is None:
        return 0

    while True:
        member = call.parent
        if member is None or member.type != 'member_expression':
            break
        if member.child_by_field_name('object') != call:
            break
        outer = member.parent
        if outer is None or outer.type != 'call_expression':
            break
        if outer.child_by_field_name('function') != member:
            break
        call = outer

    hops = 0
    current = call
    while current is not None and current.type == 'call_expression':
        receiver = _member_call_object(current)
        if receiver is None:
            break
        hops += 1
        current = receiver
    return hops


def literal_text(node: Node) -> Optional[str]:
    """Inner text of a string or template literal, without delimiters.

    Template substitutions are kept verbatim (``${id}``) so that callers can
    detect interpolation.

    Returns:
        The literal's content, or None if the node is not a string literal
    """
    if node.type not in ('string', 'template_string'):
        return None
    text = node_text(node)
    if len(text) >= 2 and text[0] in '"\'`' and text[-1] == text[0]:
        return text[1:-1]
    return text


def first_string_argument(call: Node) -> Optional[str]:
    """Value of a call's first argument when it is a plain string literal."""
    arguments = call.child_by_field_name('arguments')
    if arguments is None:
        return None
    for child in arguments.named_children:
        if child.type == 'comment':
            continue
        if child.type == 'string':
            return literal_text(child)
        return None
    return None


def call_arguments(call: Node) -> Tuple[Node, ...]:
    """Named, non-comment argument nodes of a call."""
    arguments = call.child_by_field_name('arguments')
    if arguments is None:
        return ()
    return tuple(child for child in arguments.named_children if child.type != 'comment')

"""Best-effort SQL analysis over raw string content.

Kept separate from the structural analysis: results are regex guesses over
text, exposed as ``QueryAnalysis`` records next to (never merged into) the
syntax-tree based usage patterns.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Query excerpts stored on each analysis are truncated to this length
MAX_EXCERPT_LENGTH = 200

_STATEMENT_SHAPES = [
    ('select', re.compile(r'\bselect\b[\s\S]+?\bfrom\s+\w', re.IGNORECASE)),
    ('insert', re.compile(r'\binsert\s+into\s+\w', re.IGNORECASE)),
    ('update', re.compile(r'\bupdate\s+\w+\s+set\b', re.IGNORECASE)),
    ('delete', re.compile(r'\bdelete\s+from\s+\w', re.IGNORECASE)),
]

_TABLE_PATTERNS = [
    re.compile(r'\bfrom\s+"?(\w+)"?', re.IGNORECASE),
    re.compile(r'\bjoin\s+"?(\w+)"?', re.IGNORECASE),
    re.compile(r'\binsert\s+into\s+"?(\w+)"?', re.IGNORECASE),
    re.compile(r'\bupdate\s+"?(\w+)"?\s+set\b', re.IGNORECASE),
]

_SELECT_LIST = re.compile(r'\bselect\s+([\s\S]+?)\s+from\b', re.IGNORECASE)
_IDENTIFIER = re.compile(r'^[A-Za-z_][\w]*$')

# (pattern, weight) added to a base score of 1
_COMPLEXITY_WEIGHTS = [
    (re.compile(r'\bjoin\b', re.IGNORECASE), 2),
    (re.compile(r'\bwhere\b', re.IGNORECASE), 1),
    (re.compile(r'\border\s+by\b', re.IGNORECASE), 1),
    (re.compile(r'\bgroup\s+by\b', re.IGNORECASE), 2),
    (re.compile(r'\bhaving\b', re.IGNORECASE), 2),
    (re.compile(r'\bunion\b', re.IGNORECASE), 3),
    (re.compile(r'\bexists\b|\(\s*select\b', re.IGNORECASE), 3),
]

_SQL_KEYWORDS = {
    'select', 'from', 'where', 'join', 'on', 'as', 'and', 'or', 'not', 'null',
    'set', 'into', 'values', 'left', 'right', 'inner', 'outer', 'lateral',
}


@dataclass
class QueryAnalysis:
    """A SQL-looking string literal and what could be read out of it."""
    file: str
    line: int
    operation: str
    tables: List[str] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    complexity_score: int = 1
    dynamic: bool = False
    excerpt: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file': self.file,
            'line': self.line,
            'operation': self.operation,
            'tables': list(self.tables),
            'columns': list(self.columns),
            'complexity_score': self.complexity_score,
            'dynamic': self.dynamic,
            'excerpt': self.excerpt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QueryAnalysis':
        return cls(**data)


def detect_statement(text: str) -> Optional[str]:
    """Operation of the first statement shape found in the text, if any."""
    best = None
    for operation, pattern in _STATEMENT_SHAPES:
        match = pattern.search(text)
        if match and (best is None or match.start() < best[1]):
            best = (operation, match.start())
    return best[0] if best else None


def looks_like_sql(text: str) -> bool:
    return detect_statement(text) is not None


def extract_tables(text: str) -> List[str]:
    """Table names adjacent to FROM / JOIN / INSERT INTO / UPDATE, first-seen order."""
    found = []
    for pattern in _TABLE_PATTERNS:
        for match in pattern.finditer(text):
            name = match.group(1)
            if name.lower() in _SQL_KEYWORDS or name in found:
                continue
            found.append(name)
    return found


def extract_columns(text: str) -> List[str]:
    """Column names between SELECT and FROM; empty for ``SELECT *``.

    Qualified names keep only the column part and aliases are dropped.
    """
    match = _SELECT_LIST.search(text)
    if match is None or '*' in match.group(1):
        return []

    columns = []
    for item in match.group(1).split(','):
        item = re.split(r'\s+as\s+', item.strip(), flags=re.IGNORECASE)[0].strip()
        item = item.split('.')[-1].strip('"')
        if item.lower().startswith('distinct '):
            item = item[len('distinct '):].strip()
        if _IDENTIFIER.match(item) and item not in columns:
            columns.append(item)
    return columns


def estimate_sql_complexity(text: str) -> int:
    score = 1
    for pattern, weight in _COMPLEXITY_WEIGHTS:
        if pattern.search(text):
            score += weight
    return score


def analyze_sql_text(text: str, file: str, line: int) -> Optional[QueryAnalysis]:
    """Analyze one string literal.

    Args:
        text: Literal content (template substitutions left verbatim)
        file: File the literal came from
        line: 1-based line of the literal

    Returns:
        QueryAnalysis, or None when the text does not look like SQL
    """
    operation = detect_statement(text)
    if operation is None:
        return None

    excerpt = ' '.join(text.split())[:MAX_EXCERPT_LENGTH]
    return QueryAnalysis(
        file=file,
        line=line,
        operation=operation,
        tables=extract_tables(text),
        columns=extract_columns(text),
        complexity_score=estimate_sql_complexity(text),
        dynamic='${' in text or re.search(r'\$\d+|\?', text) is not None,
        excerpt=excerpt,
    )

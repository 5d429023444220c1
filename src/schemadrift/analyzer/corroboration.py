"""Auxiliary textual signals: migration files and test files.

Structural analysis only covers the application corpus. Migrations and tests
are searched as plain text, the same way the CLI's reference shield greps
documentation: a whole-word, case-insensitive hit is enough to count.
"""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

from ..config import Config
from ..utils.logger import get_logger
from .discovery import discover_files, relative_name
from .elements import SchemaElement

logger = get_logger(__name__)

_EVOLUTION_PATTERNS = {
    'table_additions': re.compile(r'\bcreate\s+table\b', re.IGNORECASE),
    'column_additions': re.compile(r'\badd\s+column\b', re.IGNORECASE),
    'index_additions': re.compile(r'\bcreate\s+(?:unique\s+)?index\b', re.IGNORECASE),
    'table_removals': re.compile(r'\bdrop\s+table\b', re.IGNORECASE),
    'column_removals': re.compile(r'\bdrop\s+column\b', re.IGNORECASE),
}


def _search_terms(element: SchemaElement) -> List[str]:
    terms = [element.bare_name]
    db_name = element.metadata.get('db_name')
    if db_name and db_name not in terms:
        terms.append(db_name)
    return terms


def _mentions(texts: Iterable[str], terms: List[str]) -> bool:
    patterns = [re.compile(rf'(?<![\w]){re.escape(term)}(?![\w])', re.IGNORECASE) for term in terms]
    return any(pattern.search(text) for text in texts for pattern in patterns)


@dataclass
class CorroborationSignals:
    """Migration and test file contents keyed by relative path."""
    migrations: Dict[str, str] = field(default_factory=dict)
    tests: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def collect(cls, config: Config) -> 'CorroborationSignals':
        """Read every migration and test file the config's globs match."""
        signals = cls()
        root = config.project_root
        signals.migrations = signals._read_all(root, discover_files(root, config.migration_patterns))
        signals.tests = signals._read_all(root, discover_files(root, config.test_patterns))
        logger.info("signals_collected", migrations=len(signals.migrations), tests=len(signals.tests))
        return signals

    def _read_all(self, root: Path, paths: List[Path]) -> Dict[str, str]:
        contents = {}
        for path in paths:
            label = relative_name(root, path)
            try:
                with open(path, 'r', encoding='utf-8', errors='ignore') as f:
                    contents[label] = f.read()
            except OSError as e:
                logger.warning("file_skipped", path=label, reason=str(e))
                self.warnings.append(f"Skipped {label}: {e.strerror or e}")
        return contents

    def referenced_in_migrations(self, element: SchemaElement) -> bool:
        return _mentions(self.migrations.values(), _search_terms(element))

    def referenced_in_tests(self, element: SchemaElement) -> bool:
        return _mentions(self.tests.values(), _search_terms(element))

    def evolution_counts(self) -> Dict[str, int]:
        """Schema changes recorded across all migrations, by kind."""
        counts = {name: 0 for name in _EVOLUTION_PATTERNS}
        for text in self.migrations.values():
            for name, pattern in _EVOLUTION_PATTERNS.items():
                counts[name] += len(pattern.findall(text))
        return counts

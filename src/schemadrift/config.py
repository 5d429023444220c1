"""Configuration management for schemadrift.

Settings come from explicit arguments first, then the ``[tool.schemadrift]``
table of the analyzed project's ``pyproject.toml``, then built-in defaults.
The environment (optionally loaded from ``<root>/.env``) is only consulted to
resolve the project root and the log level.
"""
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .utils.logger import get_logger

__version__ = "0.3.0"

logger = get_logger(__name__)

DEFAULT_SCHEMA_PATTERNS = [
    'packages/db/src/schema.ts',
    'packages/db/src/schema/**/*.ts',
]

DEFAULT_SOURCE_PATTERNS = [
    'apps/web/src/**/*.{ts,tsx}',
    'packages/api/src/**/*.ts',
    'packages/lib/src/**/*.ts',
    'packages/worker/src/**/*.ts',
]

DEFAULT_MIGRATION_PATTERNS = [
    'packages/db/drizzle/**/*.sql',
    'packages/db/migrations/**/*.sql',
]

DEFAULT_TEST_PATTERNS = [
    '**/*.test.{ts,tsx,js}',
    '**/*.spec.{ts,tsx,js}',
]

DEFAULT_TABLE_CONSTRUCTORS = ['pgTable', 'mysqlTable', 'sqliteTable']
DEFAULT_ENUM_CONSTRUCTORS = ['pgEnum', 'mysqlEnum']
DEFAULT_INDEX_CONSTRUCTORS = ['index', 'uniqueIndex']

# Columns filtered more often than this without index support are flagged
DEFAULT_WHERE_THRESHOLD = 5

_LIST_KEYS = {
    'schema-patterns': 'schema_patterns',
    'source-patterns': 'source_patterns',
    'migration-patterns': 'migration_patterns',
    'test-patterns': 'test_patterns',
    'table-constructors': 'table_constructors',
    'enum-constructors': 'enum_constructors',
    'index-constructors': 'index_constructors',
}

_INT_KEYS = {
    'where-threshold': 'where_threshold',
    'max-workers': 'max_workers',
}


def env_log_level() -> str:
    """Log level from SCHEMADRIFT_LOG_LEVEL (default WARNING)."""
    return os.getenv("SCHEMADRIFT_LOG_LEVEL", "WARNING").upper()


def resolve_project_root(project_root: str | Path | None = None) -> Path:
    """Resolve the directory to analyze.

    Priority:
    1. Explicit argument
    2. SCHEMADRIFT_ROOT environment variable (``.env`` in the working directory is honored)
    3. Current working directory

    Raises:
        ConfigurationError: If the resolved path is not a directory
    """
    if project_root is None:
        load_dotenv(Path.cwd() / ".env")
        project_root = os.getenv("SCHEMADRIFT_ROOT") or Path.cwd()

    root = Path(project_root).expanduser().resolve()
    if not root.is_dir():
        raise ConfigurationError.root_not_found(str(root))
    return root


class Config:
    """Pipeline configuration: project root, glob patterns and heuristics."""

    def __init__(
        self,
        project_root: str | Path | None = None,
        schema_patterns: Optional[List[str]] = None,
        source_patterns: Optional[List[str]] = None,
        migration_patterns: Optional[List[str]] = None,
        test_patterns: Optional[List[str]] = None,
        table_constructors: Optional[List[str]] = None,
        enum_constructors: Optional[List[str]] = None,
        index_constructors: Optional[List[str]] = None,
        where_threshold: Optional[int] = None,
        max_workers: Optional[int] = None,
        read_pyproject: bool = True,
    ):
        """Initialize config.

        Args:
            project_root: Directory to analyze (see resolve_project_root)
            schema_patterns: Globs for schema declaration files
            source_patterns: Globs for the general source corpus
            migration_patterns: Globs for SQL migration files
            test_patterns: Globs for test files
            table_constructors: Callee names that declare tables
            enum_constructors: Callee names that declare enums
            index_constructors: Callee names that declare indexes
            where_threshold: Filter count above which an unindexed column is flagged
            max_workers: Thread count for per-file scans (1 = sequential)
            read_pyproject: Merge ``[tool.schemadrift]`` from the root's pyproject.toml

        Raises:
            ConfigurationError: On a missing root or invalid values
        """
        self.project_root = resolve_project_root(project_root)
        self._settings: Dict[str, Any] = {}

        if read_pyproject:
            self._settings.update(self._load_pyproject())

        explicit = {
            'schema_patterns': schema_patterns,
            'source_patterns': source_patterns,
            'migration_patterns': migration_patterns,
            'test_patterns': test_patterns,
            'table_constructors': table_constructors,
            'enum_constructors': enum_constructors,
            'index_constructors': index_constructors,
            'where_threshold': where_threshold,
            'max_workers': max_workers,
        }
        self._settings.update({k: v for k, v in explicit.items() if v is not None})
        self._validate()

    def _load_pyproject(self) -> Dict[str, Any]:
        """Read ``[tool.schemadrift]`` from the project's pyproject.toml.

        Returns:
            Settings keyed by attribute name (empty when absent)

        Raises:
            ConfigurationError: If the file exists but is not valid TOML
        """
        pyproject = self.project_root / 'pyproject.toml'
        if not pyproject.is_file():
            return {}

        try:
            with open(pyproject, 'rb') as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError.parse_error(str(pyproject), str(e)) from e

        section = data.get('tool', {}).get('schemadrift', {})
        settings: Dict[str, Any] = {}
        for key, value in section.items():
            attr = _LIST_KEYS.get(key) or _INT_KEYS.get(key)
            if attr is None:
                logger.warning("unknown_config_key", key=key, path=str(pyproject))
                continue
            settings[attr] = value
        return settings

    def _validate(self):
        for attr in _LIST_KEYS.values():
            value = self._settings.get(attr)
            if value is None:
                continue
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigurationError.invalid_value(attr, value, "expected a list of strings")
            if attr.endswith('_patterns'):
                for pattern in value:
                    if not pattern.strip():
                        raise ConfigurationError.invalid_value(attr, value, "empty glob pattern")
                    if pattern.startswith(('/', '\\')) or Path(pattern).is_absolute():
                        raise ConfigurationError.invalid_value(
                            attr, value, f"glob pattern '{pattern}' must be relative to the project root"
                        )
        for attr in _INT_KEYS.values():
            value = self._settings.get(attr)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError.invalid_value(attr, value, "expected a positive integer")

    @property
    def schema_patterns(self) -> List[str]:
        return list(self._settings.get('schema_patterns', DEFAULT_SCHEMA_PATTERNS))

    @property
    def source_patterns(self) -> List[str]:
        return list(self._settings.get('source_patterns', DEFAULT_SOURCE_PATTERNS))

    @property
    def migration_patterns(self) -> List[str]:
        return list(self._settings.get('migration_patterns', DEFAULT_MIGRATION_PATTERNS))

    @property
    def test_patterns(self) -> List[str]:
        return list(self._settings.get('test_patterns', DEFAULT_TEST_PATTERNS))

    @property
    def table_constructors(self) -> List[str]:
        return list(self._settings.get('table_constructors', DEFAULT_TABLE_CONSTRUCTORS))

    @property
    def enum_constructors(self) -> List[str]:
        return list(self._settings.get('enum_constructors', DEFAULT_ENUM_CONSTRUCTORS))

    @property
    def index_constructors(self) -> List[str]:
        return list(self._settings.get('index_constructors', DEFAULT_INDEX_CONSTRUCTORS))

    @property
    def where_threshold(self) -> int:
        return self._settings.get('where_threshold', DEFAULT_WHERE_THRESHOLD)

    @property
    def max_workers(self) -> int:
        """Worker threads for per-file scans.

        Results are merged in sorted file order, so the value never changes output.
        """
        return self._settings.get('max_workers', 1)

    @property
    def log_level(self) -> str:
        return env_log_level()


# Singleton instance
_config = None


def get_config(project_root: str | Path | None = None, **overrides: Any) -> Config:
    """Get or create the singleton Config instance.

    Passing a root different from the cached one, or any keyword override
    accepted by Config, rebuilds the config.
    """
    global _config
    if _config is None or overrides or (
        project_root is not None
        and Path(project_root).resolve() != _config.project_root
    ):
        _config = Config(project_root, **overrides)
    return _config

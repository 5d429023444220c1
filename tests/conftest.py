"""Shared fixtures: the brewery sample project and throwaway projects under tmp_path."""
import textwrap
from pathlib import Path

import pytest

from schemadrift.analyzer.parser import LanguageParser
from schemadrift.config import Config

FIXTURES_DIR = Path(__file__).parent / 'fixtures'
BREWERY_DIR = FIXTURES_DIR / 'brewery'


def write_files(root: Path, files: dict) -> Path:
    """Write {relative path: source} under root, dedenting each source."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip(), encoding='utf-8')
    return root


def parse_ts(source: str):
    """Parse a TypeScript snippet and return the ParseResult."""
    parser = LanguageParser('typescript')
    return parser.parse_source(textwrap.dedent(source).encode('utf-8'), 'snippet.ts')


@pytest.fixture
def brewery_root() -> Path:
    return BREWERY_DIR


@pytest.fixture
def brewery_config() -> Config:
    return Config(BREWERY_DIR, read_pyproject=False)


@pytest.fixture
def make_project(tmp_path):
    """Factory writing files into tmp_path and returning a Config for it."""
    def _make(files: dict, **overrides) -> Config:
        write_files(tmp_path, files)
        return Config(tmp_path, read_pyproject=False, **overrides)
    return _make

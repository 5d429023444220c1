"""Tree-sitter parser for TypeScript and JavaScript sources."""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from tree_sitter import Language, Node, Parser, Tree
import tree_sitter_javascript as tsjavascript
import tree_sitter_typescript as tstypescript

from ..errors import SyntaxParseError


@dataclass
class ParseResult:
    """A parsed source file: tree plus the bytes it was parsed from."""
    path: Path
    source: bytes
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node


class LanguageParser:
    """Parser for one tree-sitter grammar (typescript, tsx or javascript)."""

    SUPPORTED_LANGUAGES = {
        '.ts': 'typescript',
        '.mts': 'typescript',
        '.cts': 'typescript',
        '.tsx': 'tsx',
        '.js': 'javascript',
        '.jsx': 'javascript',
        '.mjs': 'javascript',
        '.cjs': 'javascript',
    }

    _shared: Dict[str, 'LanguageParser'] = {}

    def __init__(self, language: str):
        """Initialize parser for given language.

        Args:
            language: One of 'typescript', 'tsx', 'javascript'

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        if self.language == 'typescript':
            lang = Language(tstypescript.language_typescript())
        elif self.language == 'tsx':
            lang = Language(tstypescript.language_tsx())
        elif self.language == 'javascript':
            lang = Language(tsjavascript.language())
        else:
            raise ValueError(f"Unsupported language: {self.language}")

        return Parser(lang)

    def parse_source(self, source: bytes, path: str | Path = '<memory>') -> ParseResult:
        """Parse in-memory source.

        Args:
            source: Raw file bytes
            path: Path reported in errors and results

        Returns:
            ParseResult for the source

        Raises:
            SyntaxParseError: If the tree contains syntax errors
        """
        path = Path(path)
        tree = self.parser.parse(source)
        if tree.root_node.has_error:
            raise SyntaxParseError.malformed(str(path), _first_error_line(tree.root_node))
        return ParseResult(path=path, source=source, tree=tree)

    def parse_file(self, file_path: str | Path) -> ParseResult:
        """Read and parse a file.

        Args:
            file_path: Path to source file to parse

        Returns:
            ParseResult for the file

        Raises:
            SyntaxParseError: If the file cannot be read or is malformed
        """
        file_path = Path(file_path)
        try:
            with open(file_path, 'rb') as f:
                source_code = f.read()
        except OSError as e:
            raise SyntaxParseError.unreadable(str(file_path), e.strerror or str(e)) from e
        return self.parse_source(source_code, file_path)

    @classmethod
    def from_file_extension(cls, file_path: str | Path) -> Optional['LanguageParser']:
        """Get the parser for a file's extension.

        Parsers are cached per language. A tree-sitter Parser is not
        thread-safe, so worker threads build their own via ``cls(language)``.

        Args:
            file_path: Path to determine language from

        Returns:
            LanguageParser instance, or None if extension not supported
        """
        language = cls.SUPPORTED_LANGUAGES.get(Path(file_path).suffix.lower())
        if language is None:
            return None
        if language not in cls._shared:
            cls._shared[language] = cls(language)
        return cls._shared[language]


def parse_path(file_path: str | Path, shared: bool = True) -> ParseResult:
    """Parse a file with the grammar its extension selects.

    Args:
        file_path: Source file path
        shared: Reuse the per-language parser (False in worker threads)

    Raises:
        SyntaxParseError: If the extension is unsupported, or reading/parsing fails
    """
    file_path = Path(file_path)
    if shared:
        parser = LanguageParser.from_file_extension(file_path)
    else:
        language = LanguageParser.SUPPORTED_LANGUAGES.get(file_path.suffix.lower())
        parser = LanguageParser(language) if language else None
    if parser is None:
        raise SyntaxParseError.unreadable(str(file_path), f"unsupported extension '{file_path.suffix}'")
    return parser.parse_file(file_path)


def _first_error_line(root: Node) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == 'ERROR' or node.is_missing:
            return node.start_point[0] + 1
        if node.has_error:
            stack.extend(reversed(node.children))
    return 1

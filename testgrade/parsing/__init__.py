"""Tree-sitter parsing for JavaScript and TypeScript test and source files.

Grammars come from tree-sitter-language-pack. A fresh parser is built per
call so concurrent analyses never share parser state.
"""

from __future__ import annotations

import importlib.util
import logging
from pathlib import PurePath

logger = logging.getLogger(__name__)

# Errors raised while loading a grammar or building a parser/query.
PARSE_INIT_ERRORS = (ImportError, OSError, ValueError, RuntimeError)

GRAMMAR_BY_SUFFIX: dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

# Used when a path carries no suffix at all (stdin, editor buffers).
DEFAULT_GRAMMAR = "tsx"


def is_available() -> bool:
    """Return True if tree-sitter-language-pack is importable."""
    return importlib.util.find_spec("tree_sitter_language_pack") is not None


def grammar_for(path: str) -> str | None:
    """Pick the grammar for ``path``; None when the suffix is not JS/TS."""
    suffix = PurePath(path).suffix.lower() if path else ""
    if not suffix:
        return DEFAULT_GRAMMAR
    return GRAMMAR_BY_SUFFIX.get(suffix)


def get_parser(grammar: str):
    """Get a tree-sitter parser and language for the given grammar."""
    from tree_sitter_language_pack import get_language, get_parser as _get_parser

    return _get_parser(grammar), get_language(grammar)


def decode_source(content: bytes | str) -> tuple[bytes, str] | None:
    """Return (bytes, text), or None when the content is not text at all."""
    if isinstance(content, str):
        try:
            return content.encode("utf-8"), content
        except UnicodeEncodeError:
            return None
    if b"\x00" in content:
        return None
    try:
        return content, content.decode("utf-8")
    except UnicodeDecodeError:
        return None


def parse_source(data: bytes, grammar: str):
    """Parse ``data`` and return (tree, language). Raises PARSE_INIT_ERRORS."""
    parser, language = get_parser(grammar)
    tree = parser.parse(data)
    if tree.root_node.has_error:
        logger.debug("tree-sitter recovered from syntax errors (%s grammar)", grammar)
    return tree, language


__all__ = [
    "DEFAULT_GRAMMAR",
    "GRAMMAR_BY_SUFFIX",
    "PARSE_INIT_ERRORS",
    "decode_source",
    "get_parser",
    "grammar_for",
    "is_available",
    "parse_source",
]

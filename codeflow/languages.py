"""Languages supported by the playground."""

from enum import Enum
from pathlib import Path

from .errors import ValidationError


class Language(Enum):
    """A supported language, stored by its display name."""

    JAVASCRIPT = "JavaScript"
    PYTHON = "Python"
    JAVA = "Java"
    CPP = "C++"
    C = "C"
    GO = "Go"
    HTML = "HTML"
    SQL = "SQL"
    RUST = "Rust"
    SWIFT = "Swift"

    @classmethod
    def parse(cls, value: "str | Language") -> "Language":
        """Look up a language by display name or member name, case-insensitively.

        Raises:
            ValidationError: If the name is not a supported language.
        """
        if isinstance(value, Language):
            return value

        wanted = value.strip().lower()
        for language in cls:
            if wanted in (language.value.lower(), language.name.lower()):
                return language

        raise ValidationError(f"Unsupported language: {value!r}")


_EXTENSIONS = {
    ".js": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".py": Language.PYTHON,
    ".java": Language.JAVA,
    ".cpp": Language.CPP,
    ".cc": Language.CPP,
    ".hpp": Language.CPP,
    ".c": Language.C,
    ".h": Language.C,
    ".go": Language.GO,
    ".html": Language.HTML,
    ".htm": Language.HTML,
    ".sql": Language.SQL,
    ".rs": Language.RUST,
    ".swift": Language.SWIFT,
}


def language_for_path(path: str | Path) -> Language | None:
    """Guess the language of a source file from its extension."""
    return _EXTENSIONS.get(Path(path).suffix.lower())

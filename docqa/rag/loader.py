"""Corpus loader for the documentation dataset.

The corpus root holds one directory per framework; every regular file in a
framework directory is one documentation unit::

    docs_dataset/
        react/
            intro.md
            hooks.md
        vue/
            ...
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union
import structlog

from docqa.errors import CorpusError
from docqa.rag.md_parser import MARKDOWN_SUFFIXES, frontmatter_title, split_frontmatter

logger = structlog.get_logger()


def framework_key(name: str) -> str:
    """Case-insensitive key used for framework lookups and index paths."""
    return name.strip().lower()


def is_valid_framework_key(key: str) -> bool:
    """A key names exactly one directory directly under the index root."""
    return (
        bool(key)
        and not key.startswith(".")
        and "/" not in key
        and "\\" not in key
        and Path(key).name == key
    )


@dataclass(frozen=True)
class DocumentUnit:
    """Raw text of one documentation file."""

    text: str
    framework: str
    source_id: str
    title: Optional[str] = None


@dataclass(frozen=True)
class Loaded:
    """A file that was read successfully."""

    document: DocumentUnit


@dataclass(frozen=True)
class Skipped:
    """A file that was excluded from the corpus, with the reason."""

    framework: str
    source_id: str
    reason: str


LoadResult = Union[Loaded, Skipped]


@dataclass
class CorpusScan:
    """Outcome of scanning a corpus root."""

    root: Path
    frameworks: Dict[str, str] = field(default_factory=dict)  # key -> display name
    results: List[LoadResult] = field(default_factory=list)

    @property
    def documents(self) -> List[DocumentUnit]:
        return [r.document for r in self.results if isinstance(r, Loaded)]

    @property
    def skipped(self) -> List[Skipped]:
        return [r for r in self.results if isinstance(r, Skipped)]


class CorpusLoader:
    """Reads framework-partitioned documentation from disk."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def scan(self, root: Path) -> CorpusScan:
        """Enumerate frameworks under ``root`` and read every file.

        Directories are listed in sorted order so fixtures are reproducible;
        nothing downstream depends on that order.

        Args:
            root: Corpus root directory

        Returns:
            CorpusScan with one LoadResult per file

        Raises:
            CorpusError: If the root is missing or a framework directory
                cannot be listed
        """
        root = Path(root)
        if not root.exists():
            raise CorpusError(f"Corpus directory not found: {root}")
        if not root.is_dir():
            raise CorpusError(f"Corpus path is not a directory: {root}")

        try:
            entries = sorted(root.iterdir())
        except OSError as e:
            raise CorpusError(f"Cannot list corpus directory {root}: {e}") from e

        scan = CorpusScan(root=root)

        for framework_dir in entries:
            if not framework_dir.is_dir() or framework_dir.name.startswith("."):
                continue

            key = framework_key(framework_dir.name)
            if not is_valid_framework_key(key):
                continue
            # Directories differing only by case are one framework
            framework = scan.frameworks.setdefault(key, framework_dir.name)

            scan.results.extend(self._load_framework(framework_dir, framework))

        logger.info(
            "corpus_scanned",
            root=str(root),
            frameworks=sorted(scan.frameworks),
            documents=len(scan.documents),
            skipped=len(scan.skipped),
        )

        return scan

    def _load_framework(self, framework_dir: Path, framework: str) -> List[LoadResult]:
        try:
            files = sorted(framework_dir.iterdir())
        except OSError as e:
            raise CorpusError(
                f"Cannot read framework directory {framework_dir}: {e}"
            ) from e

        results: List[LoadResult] = []
        for path in files:
            if path.name.startswith("."):
                results.append(Skipped(framework, path.name, "hidden file"))
            elif not path.is_file():
                results.append(Skipped(framework, path.name, "not a regular file"))
            else:
                results.append(self.load_file(path, framework))

        for result in results:
            if isinstance(result, Skipped):
                logger.warning(
                    "corpus_file_skipped",
                    framework=framework,
                    source_id=result.source_id,
                    reason=result.reason,
                )

        return results

    def load_file(self, path: Path, framework: str) -> LoadResult:
        """Read one documentation file.

        Unreadable or undecodable files become ``Skipped`` instead of
        failing the scan.
        """
        try:
            raw = path.read_bytes()
        except OSError as e:
            return Skipped(framework, path.name, f"unreadable: {e}")

        try:
            text = raw.decode(self.encoding)
        except UnicodeDecodeError as e:
            return Skipped(framework, path.name, f"not valid {self.encoding}: {e.reason}")

        title = None
        if path.suffix.lower() in MARKDOWN_SUFFIXES:
            frontmatter, text = split_frontmatter(text)
            title = frontmatter_title(frontmatter)

        return Loaded(
            DocumentUnit(
                text=text,
                framework=framework,
                source_id=path.name,
                title=title,
            )
        )

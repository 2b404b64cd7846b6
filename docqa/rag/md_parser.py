"""Markdown frontmatter handling for documentation files.

Documentation pages commonly start with a YAML frontmatter block (title,
sidebar position, slug...). The block is metadata, not prose, so it is
split off before the text is normalized and chunked.
"""
import re
from typing import Any, Dict, Optional, Tuple
import yaml
import structlog

logger = structlog.get_logger()

MARKDOWN_SUFFIXES = {".md", ".mdx", ".markdown"}

# Regex for YAML frontmatter (must be at start of file)
FRONTMATTER_PATTERN = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


def split_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Extract YAML frontmatter from markdown content.

    Args:
        content: Full markdown content

    Returns:
        Tuple of (frontmatter_dict, content_without_frontmatter)
    """
    match = FRONTMATTER_PATTERN.match(content)

    if not match:
        return {}, content

    yaml_content = match.group(1)
    try:
        frontmatter = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        logger.warning(
            "frontmatter_parse_error",
            error=str(e),
            yaml_preview=yaml_content[:100],
        )
        # Not valid YAML: treat the block as ordinary text
        return {}, content

    if not isinstance(frontmatter, dict):
        frontmatter = {}

    return frontmatter, content[match.end():]


def frontmatter_title(frontmatter: Dict[str, Any]) -> Optional[str]:
    """Return the page title declared in frontmatter, if any."""
    title = frontmatter.get("title")
    if title is None:
        return None
    title = str(title).strip()
    return title or None

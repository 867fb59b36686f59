"""Placeholder substitution for manifest templates."""

import re
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Mapping, Optional, Union

from kube_deploy.utils.errors import ConfigurationError, ErrorContext
from kube_deploy.utils.logging import get_logger

logger = get_logger(__name__)

# ${name} (anything but '}') or $name (letters, digits, underscore)
PLACEHOLDER_PATTERN = re.compile(r"\$\{(?P<braced>[^}]+)\}|\$(?P<bare>[A-Za-z0-9_]+)")


@dataclass(frozen=True)
class RenderedManifest:
    """A manifest after placeholder substitution."""

    source_path: str
    content: str
    rendered_path: Path


def render_template(text: str, placeholders: Mapping[str, str]) -> str:
    """Replace ``${name}`` and ``$name`` tokens with values from ``placeholders``.

    Tokens without a matching key are kept exactly as written so a later
    templating stage can still substitute them.
    """
    if "$" not in text:
        return text

    def substitute(match: "re.Match[str]") -> str:
        name = match.group("braced")
        if name is None:
            name = match.group("bare")
        if name in placeholders:
            return placeholders[name]
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(substitute, text)


def scratch_path_for(manifest: str, scratch_dir: Path) -> Path:
    """Return where a manifest is written inside the scratch directory.

    The manifest's relative path is preserved; absolute paths are re-rooted.

    Raises:
        ConfigurationError: If the path would land outside ``scratch_dir``
    """
    pure = PurePath(manifest)
    if pure.is_absolute():
        pure = PurePath(*pure.parts[1:])
    if ".." in pure.parts or not pure.parts:
        raise ConfigurationError(
            f"Manifest path '{manifest}' must stay inside the working directory",
            context=ErrorContext(manifest=manifest, operation="render"),
        )
    return scratch_dir / pure


def render_manifest(
    manifest: str,
    placeholders: Mapping[str, str],
    scratch_dir: Union[str, Path],
    working_dir: Optional[Union[str, Path]] = None,
) -> RenderedManifest:
    """Render one manifest file and write it under ``scratch_dir``.

    Args:
        manifest: Manifest path, relative to ``working_dir`` unless absolute
        placeholders: Placeholder name to value mapping
        scratch_dir: Directory receiving rendered manifests
        working_dir: Base directory for relative manifest paths

    Returns:
        RenderedManifest describing the written file

    Raises:
        ConfigurationError: If the manifest is missing, unreadable or cannot be written
    """
    context = ErrorContext(manifest=manifest, operation="render")
    source = Path(manifest)
    if not source.is_absolute() and working_dir is not None:
        source = Path(working_dir) / source

    if not source.is_file():
        raise ConfigurationError(
            f"Manifest {manifest} does not exist",
            context=context,
            suggestions=["Check the manifests parameter and the working directory"],
        )

    try:
        content = source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Can't read manifest {manifest}", context=context, cause=e)

    rendered = render_template(content, placeholders)

    target = scratch_path_for(manifest, Path(scratch_dir))
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(rendered, encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Failed writing rendered manifest to '{target}'", context=context, cause=e
        )

    logger.debug(f"Rendered {manifest}:\n{rendered}", extra={'manifest': manifest})

    return RenderedManifest(source_path=manifest, content=rendered, rendered_path=target)

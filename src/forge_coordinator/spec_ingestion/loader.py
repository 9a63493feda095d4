"""
forge-coordinator: component spec loader.

Purpose
- Turn a build spec on disk into the ordered ``ComponentSpec`` list the
  coordinator is constructed from.

Supported sources
- A spec directory containing ``components/*.md``. The component name is the
  file stem; dependencies come from a ``depends on:`` block of list items such
  as ``- greeter: greet function``. The block ends at a blank line or heading.
  ``none`` entries are ignored.
- A YAML manifest (``.yaml``/``.yml``)::

      schema_version: 1
      build: hello-owl
      components:
        - name: greeter
        - name: cli
          depends_on: [greeter]

Functional requirements
- Fail with actionable ``SpecLoadError`` (path, line, hint) on unreadable or
  malformed input, and when no components are found.
- Deterministic ordering: markdown files sorted by name, manifest entries in
  document order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final

import yaml

from forge_coordinator.constants import (
    COMPONENT_FILE_SUFFIX,
    COMPONENTS_DIR,
    MANIFEST_SCHEMA_VERSION,
)
from forge_coordinator.domain.models import ComponentSpec

_MANIFEST_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})
_DEPENDS_HEADER_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:#{1,6}\s*)?(?:\*\*|__)?depends on(?:\*\*|__)?\s*:", flags=re.IGNORECASE
)
_HEADING_RE: Final[re.Pattern[str]] = re.compile(r"^\s{0,3}#{1,6}\s")
_DEPENDENCY_ITEM_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*[-*+]\s*`?(?P<name>[\w.-]+)`?\s*:"
)
_NONE_MARKER: Final[str] = "none"


class SpecLoadError(Exception):
    """Structured spec loading failure."""

    path: Path
    line: int | None
    message: str
    hint: str

    def __init__(
        self,
        *,
        path: Path,
        message: str,
        hint: str,
        line: int | None = None,
    ) -> None:
        self.path = path
        self.line = line
        self.message = message
        self.hint = hint
        location = str(path) if line is None else f"{path}:{line}"
        super().__init__(f"{location}: {message} (hint: {hint})")


@dataclass(frozen=True, slots=True)
class ComponentManifest:
    """Components loaded from one spec source, ready for a coordinator."""

    build_id: str
    components: tuple[ComponentSpec, ...]
    source: Path

    def __len__(self) -> int:
        return len(self.components)


def load_component_specs(path: str | Path, *, build_id: str | None = None) -> ComponentManifest:
    """
    Load component specs from a spec directory or YAML manifest.

    ``build_id`` overrides whatever identifier the source itself provides.
    """

    source = Path(path).expanduser()
    if source.is_dir():
        manifest = _load_markdown_directory(source)
    elif source.is_file() and source.suffix.lower() in _MANIFEST_SUFFIXES:
        manifest = _load_yaml_manifest(source)
    elif source.exists():
        raise SpecLoadError(
            path=source,
            message="unsupported spec source",
            hint="pass a spec directory or a .yaml/.yml manifest",
        )
    else:
        raise SpecLoadError(
            path=source,
            message="spec path does not exist",
            hint="pass a spec directory or a .yaml/.yml manifest",
        )

    if not manifest.components:
        raise SpecLoadError(
            path=source,
            message="no components found",
            hint=f"add {COMPONENTS_DIR}/*{COMPONENT_FILE_SUFFIX} files or manifest entries",
        )

    if build_id is not None:
        if not build_id.strip():
            raise SpecLoadError(
                path=source, message="build id must not be empty", hint="omit --build-id"
            )
        return ComponentManifest(
            build_id=build_id.strip(), components=manifest.components, source=manifest.source
        )
    return manifest


def parse_component_markdown(text: str) -> tuple[str, ...]:
    """Extract dependency names from one component markdown document."""

    dependencies: list[str] = []
    in_block = False
    seen_line = False
    for line in text.splitlines():
        if not in_block:
            if _DEPENDS_HEADER_RE.match(line):
                in_block = True
            continue
        if not line.strip():
            # Blank lines directly after the header are tolerated.
            if seen_line:
                break
            continue
        seen_line = True
        if _HEADING_RE.match(line):
            break
        match = _DEPENDENCY_ITEM_RE.match(line)
        if match is None:
            continue
        name = match.group("name").lower()
        if name == _NONE_MARKER or name in dependencies:
            continue
        dependencies.append(name)
    return tuple(dependencies)


def _load_markdown_directory(spec_dir: Path) -> ComponentManifest:
    components_dir = spec_dir / COMPONENTS_DIR
    if not components_dir.is_dir():
        raise SpecLoadError(
            path=components_dir,
            message="components directory not found",
            hint=f"create {COMPONENTS_DIR}/ with one {COMPONENT_FILE_SUFFIX} file per component",
        )

    files = sorted(
        item
        for item in components_dir.iterdir()
        if item.is_file() and item.suffix == COMPONENT_FILE_SUFFIX
    )
    specs: list[ComponentSpec] = []
    for file_path in files:
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SpecLoadError(
                path=file_path, message="failed to read component file", hint=str(exc)
            ) from exc
        specs.append(
            _make_spec(file_path.stem, parse_component_markdown(text), file_path)
        )

    return ComponentManifest(
        build_id=spec_dir.resolve().name, components=tuple(specs), source=spec_dir
    )


def _load_yaml_manifest(manifest_path: Path) -> ComponentManifest:
    try:
        with manifest_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise SpecLoadError(
            path=manifest_path, message="failed to read manifest", hint=str(exc)
        ) from exc
    except yaml.YAMLError as exc:
        line = None
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            line = mark.line + 1
        raise SpecLoadError(
            path=manifest_path, line=line, message="invalid YAML", hint=str(exc)
        ) from exc

    if not isinstance(payload, dict):
        raise SpecLoadError(
            path=manifest_path,
            message="manifest root must be a mapping",
            hint="declare 'components:' at the top level",
        )

    unknown = sorted(
        str(key) for key in payload if key not in {"schema_version", "build", "components"}
    )
    if unknown:
        raise SpecLoadError(
            path=manifest_path,
            message=f"unknown manifest field(s): {', '.join(unknown)}",
            hint="allowed fields are schema_version, build, components",
        )

    version = payload.get("schema_version", MANIFEST_SCHEMA_VERSION)
    if version != MANIFEST_SCHEMA_VERSION:
        raise SpecLoadError(
            path=manifest_path,
            message=f"unsupported manifest schema_version {version!r}",
            hint=f"expected schema_version {MANIFEST_SCHEMA_VERSION}",
        )

    build = payload.get("build", manifest_path.stem)
    if not isinstance(build, str) or not build.strip():
        raise SpecLoadError(
            path=manifest_path,
            message="'build' must be a non-empty string",
            hint="set build: <identifier> or omit it",
        )

    raw_components = payload.get("components")
    if not isinstance(raw_components, list):
        raise SpecLoadError(
            path=manifest_path,
            message="'components' must be a list",
            hint="list entries as '- name: <component>'",
        )

    specs: list[ComponentSpec] = []
    for index, entry in enumerate(raw_components):
        where = f"components[{index}]"
        if isinstance(entry, str):
            specs.append(_make_spec(entry, (), manifest_path))
            continue
        if not isinstance(entry, dict):
            raise SpecLoadError(
                path=manifest_path,
                message=f"{where} must be a mapping or a name",
                hint="use '- name: <component>'",
            )
        name = entry.get("name")
        if not isinstance(name, str):
            raise SpecLoadError(
                path=manifest_path,
                message=f"{where}.name must be a string",
                hint="every component needs a name",
            )
        depends_on = entry.get("depends_on", [])
        if depends_on is None:
            depends_on = []
        if not isinstance(depends_on, list) or not all(isinstance(dep, str) for dep in depends_on):
            raise SpecLoadError(
                path=manifest_path,
                message=f"{where}.depends_on must be a list of names",
                hint="use depends_on: [a, b]",
            )
        specs.append(_make_spec(name, tuple(depends_on), manifest_path))

    return ComponentManifest(build_id=build.strip(), components=tuple(specs), source=manifest_path)


def _make_spec(name: str, dependencies: tuple[str, ...], path: Path) -> ComponentSpec:
    try:
        return ComponentSpec(name=name, dependencies=dependencies)
    except ValueError as exc:
        raise SpecLoadError(
            path=path, message=f"invalid component {name!r}", hint=str(exc)
        ) from exc


__all__ = [
    "ComponentManifest",
    "SpecLoadError",
    "load_component_specs",
    "parse_component_markdown",
]

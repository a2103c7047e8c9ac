"""YAML ability discovery and loading."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

import yaml

from abilities.definitions.models import AbilityListItem, AbilitySource, LoadedAbility
from abilities.definitions.validator import ValidationIssue, validate_ability
from abilities.utils import get_logger

if TYPE_CHECKING:
    from abilities.config import AbilitiesConfig

logger = get_logger(__name__)

ABILITY_FILENAME = "ability.yaml"
ABILITY_PATTERNS = ("*.yaml", "*/ability.yaml", "*/*.yaml", "*/*/ability.yaml")

DEFAULT_PROJECT_DIR = ".abilities"
DEFAULT_GLOBAL_DIR = "~/.config/abilities"


def resolve_ability_name(file_path: Path, base_dir: Path) -> str:
    """Derive an ability name from its location.

    ``deploy.yaml`` -> ``deploy``, ``deploy/ability.yaml`` -> ``deploy``,
    ``ops/deploy.yaml`` -> ``ops/deploy``.
    """
    relative = file_path.relative_to(base_dir)
    parent = relative.parent.as_posix()

    if file_path.name == ABILITY_FILENAME:
        return file_path.parent.name if parent == "." else parent
    if parent == ".":
        return file_path.stem
    return f"{parent}/{file_path.stem}"


def read_ability_file(file_path: Path) -> dict[str, Any]:
    """Parse an ability file.

    Raises:
        ValueError: If the file does not hold a YAML mapping
    """
    data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML in {file_path}: expected a mapping")
    return data


def discover_files(base_dir: Path) -> list[Path]:
    """Ability files under ``base_dir``, each listed once."""
    files: dict[Path, None] = {}
    for pattern in ABILITY_PATTERNS:
        for path in sorted(base_dir.glob(pattern)):
            if path.is_file():
                files[path] = None
    return list(files)


class AbilityLoader:
    """Load ability definitions from project and global directories.

    Project abilities override global abilities of the same name. Files that
    fail to parse or validate are logged and skipped; their problems stay
    available through ``failures``.

    Example:
        >>> loader = AbilityLoader([".abilities"])
        >>> abilities = loader.load()
        >>> deploy = loader.get("deploy")
    """

    def __init__(
        self,
        directories: Iterable[str | Path] = (DEFAULT_PROJECT_DIR,),
        global_directory: str | Path | None = DEFAULT_GLOBAL_DIR,
        include_global: bool = True,
        disabled: Iterable[str] = (),
    ):
        """Initialize loader.

        Args:
            directories: Project directories, later ones override earlier ones
            global_directory: User-wide directory
            include_global: Whether to scan ``global_directory``
            disabled: Ability names to drop after loading
        """
        self.directories = [Path(d).expanduser() for d in directories]
        self.global_directory = Path(global_directory).expanduser() if global_directory else None
        self.include_global = include_global
        self.disabled = set(disabled)

        self._abilities: dict[str, LoadedAbility] = {}
        self.failures: dict[str, list[ValidationIssue]] = {}

    @classmethod
    def from_config(cls, config: "AbilitiesConfig") -> "AbilityLoader":
        return cls(
            directories=config.directories,
            global_directory=config.global_directory,
            include_global=config.include_global,
            disabled=config.disabled_abilities,
        )

    def load_file(self, file_path: Path, base_dir: Path, source: AbilitySource) -> LoadedAbility | None:
        """Load and validate a single file, returning None when it is invalid."""
        name = resolve_ability_name(file_path, base_dir)
        try:
            data = read_ability_file(file_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to read ability file", extra={"path": str(file_path), "error": str(e)})
            self.failures[name] = [ValidationIssue(path="", message=str(e), code="SCHEMA_ERROR")]
            return None

        name = data.get("name") or name
        data = {**data, "name": name, "source_path": file_path}

        result = validate_ability(data)
        if not result.valid:
            logger.warning(
                "Skipping invalid ability",
                extra={
                    "ability": name,
                    "path": str(file_path),
                    "errors": [str(issue) for issue in result.errors],
                },
            )
            self.failures[name] = result.errors
            return None

        self.failures.pop(name, None)
        return LoadedAbility(ability=result.ability, source=source, file_path=file_path)

    def discover(self, base_dir: Path, source: AbilitySource) -> list[LoadedAbility]:
        """Load every valid ability file under ``base_dir``."""
        if not base_dir.is_dir():
            logger.debug("Ability directory does not exist", extra={"path": str(base_dir)})
            return []

        loaded = []
        for file_path in discover_files(base_dir):
            ability = self.load_file(file_path, base_dir, source)
            if ability is not None:
                loaded.append(ability)
        return loaded

    def load(self) -> dict[str, LoadedAbility]:
        """(Re)load all abilities."""
        self._abilities = {}
        self.failures = {}

        if self.include_global and self.global_directory is not None:
            for loaded in self.discover(self.global_directory, AbilitySource.GLOBAL):
                self._abilities[loaded.ability.name] = loaded

        for directory in self.directories:
            for loaded in self.discover(directory, AbilitySource.PROJECT):
                self._abilities[loaded.ability.name] = loaded

        for name in self.disabled:
            self._abilities.pop(name, None)

        logger.info(
            "Loaded abilities",
            extra={"count": len(self._abilities), "failed": len(self.failures)},
        )
        return dict(self._abilities)

    def add(self, loaded: LoadedAbility) -> None:
        """Register an ability that did not come from a file."""
        self._abilities[loaded.ability.name] = loaded

    def get(self, name: str) -> LoadedAbility | None:
        return self._abilities.get(name)

    @property
    def abilities(self) -> dict[str, LoadedAbility]:
        return dict(self._abilities)

    def list_items(self) -> list[AbilityListItem]:
        return list_abilities(self._abilities.values())


def list_abilities(abilities: Iterable[LoadedAbility]) -> list[AbilityListItem]:
    """Summarize loaded abilities for listing."""
    return [
        AbilityListItem(
            name=loaded.ability.name,
            description=loaded.ability.description,
            source=loaded.source,
            triggers=list(loaded.ability.triggers.keywords) if loaded.ability.triggers else [],
            input_count=len(loaded.ability.inputs),
            step_count=len(loaded.ability.steps),
        )
        for loaded in abilities
    ]

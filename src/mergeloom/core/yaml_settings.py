"""YAML settings source with layered files and include: directives."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

APP_NAME = "mergeloom"

DEFAULTS_FILE = Path(__file__).parent.parent / "defaults" / "default.yaml"

# Created lazily; log.py imports config machinery indirectly
_bootstrap_logger = None


def _get_bootstrap_logger():
    """Logger used while configuration itself is still loading."""
    global _bootstrap_logger
    if _bootstrap_logger is None:
        from mergeloom.core.log import Logger
        _bootstrap_logger = Logger()
        _bootstrap_logger.setup(log_root=Path.home(), session_name="bootstrap")
    return _bootstrap_logger


def _cleanup_bootstrap_logger():
    """Drop the bootstrap logger once Config installed the real one."""
    global _bootstrap_logger
    if _bootstrap_logger:
        _bootstrap_logger.close()
        _bootstrap_logger = None


def cli_includes(argv: list[str]) -> list[str]:
    """Collect the values of every ``--include FILE`` in argv."""
    includes = []
    i = 1
    while i < len(argv):
        if argv[i] == "--include" and i + 1 < len(argv):
            includes.append(argv[i + 1])
            i += 1
        i += 1
    return includes


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """Layered YAML configuration.

    Files are deep-merged in this order, later winning:
        package defaults < user config dir < ./mergeloom.yaml
        < --include files (in command-line order)

    Any file may carry an ``include:`` key (string or list); included
    files are loaded first and the including file overrides them.
    """

    def __init__(
        self, settings_cls: type[BaseSettings], yaml_file=None
    ):
        includes = cli_includes(sys.argv)

        base = yaml_file or settings_cls.model_config.get("yaml_file")
        if base and includes:
            yaml_file = (
                [base] if isinstance(base, (str, os.PathLike)) else list(base)
            ) + includes
        elif includes:
            yaml_file = includes
        else:
            yaml_file = base

        super().__init__(settings_cls, yaml_file)

    def _read_files(self, files, deep_merge: bool = True):  # noqa: ARG002
        """Load and deep-merge every configuration layer that exists.

        Args:
            files: Explicit files (yaml_file override and --include)
            deep_merge: Accepted for the base class signature; layers
                are always deep-merged

        Returns:
            Merged dictionary
        """
        files_to_load = [
            DEFAULTS_FILE,
            Path(user_config_dir(APP_NAME, appauthor=False))
            / f"{APP_NAME}.yaml",
            Path(f"{APP_NAME}.yaml"),
        ]
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            files_to_load.extend(Path(f).expanduser() for f in files)

        result = {}
        seen: set[Path] = set()
        for file_path in files_to_load:
            # ./mergeloom.yaml may also be the explicit yaml_file
            key = file_path.resolve()
            if key in seen:
                continue
            seen.add(key)

            if not file_path.is_file():
                _get_bootstrap_logger().debug(
                    "Configuration file not found (skipping)",
                    file=str(file_path),
                )
                continue

            with _get_bootstrap_logger().span(
                "Configuration loading",
                file=str(file_path),
            ):
                data = self._load_file_recursive(file_path, set())
                result = self._deep_merge(result, data)

        return result

    def _load_file_recursive(
        self, filepath: Path, visited: set[Path]
    ) -> dict:
        """Load one file, resolving its include: directive.

        Raises:
            ValueError: On an include cycle
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        includes = data.pop("include", None) or []
        if isinstance(includes, str):
            includes = [includes]

        for inc in includes:
            inc_path = self._resolve_path(inc, filepath)
            with _get_bootstrap_logger().span(
                f"Including {inc_path.name}",
                included_from=str(filepath),
                include_file=str(inc_path),
            ):
                inc_data = self._load_file_recursive(inc_path, visited.copy())
                data = self._deep_merge(inc_data, data)

        return data

    def _resolve_path(self, include_path: str, relative_to: Path) -> Path:
        """Resolve an include path relative to the including file."""
        path = Path(include_path).expanduser()
        if path.is_absolute():
            return path
        return (relative_to.parent / path).resolve()

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Recursively merge override into a copy of base."""
        result = base.copy()
        for key, value in override.items():
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

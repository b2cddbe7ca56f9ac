"""
YAML configuration loader with file inclusion support.

A value tagged `!include other.yaml` is replaced by the parsed contents of that
file, resolved relative to the including file first and the loader's base path
second.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)


class CircularIncludeError(Exception):
    """Raised when circular dependencies are detected in config includes."""
    pass


class ConfigLoader:
    """Configuration loader with support for !include tags and caching."""

    def __init__(self, base_path: Optional[Path] = None):
        """
        Initialize the config loader.

        Args:
            base_path: Base directory for resolving relative paths.
                      Defaults to current working directory.
        """
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self.cache: Dict[Path, Dict[str, Any]] = {}
        self._include_stack: List[Path] = []
        self.yaml_loader = self._build_yaml_loader()

    def _build_yaml_loader(self) -> type:
        """Create a SafeLoader subclass that understands !include."""
        loader_self = self

        class IncludeLoader(yaml.SafeLoader):
            current_file: Optional[Path] = None

        def include_constructor(loader: IncludeLoader, node: yaml.Node) -> Any:
            relative_to = Path(loader.current_file).parent if loader.current_file else loader_self.base_path
            resolved = loader_self._resolve_path(loader.construct_scalar(node), relative_to)
            return loader_self._load_file(resolved)

        IncludeLoader.add_constructor('!include', include_constructor)
        return IncludeLoader

    def load_config(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a configuration file with includes resolved.

        Args:
            config_path: Path to the configuration file.

        Returns:
            Loaded configuration dictionary.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            CircularIncludeError: If circular includes are detected.
        """
        config_path = Path(config_path)
        if not config_path.is_absolute():
            config_path = self.base_path / config_path
        config_path = config_path.resolve()

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        self._include_stack.clear()
        return self._load_file(config_path)

    def _load_file(self, file_path: Path) -> Dict[str, Any]:
        """Load one YAML file, consulting the cache and the include stack."""
        file_path = file_path.resolve()

        if file_path in self._include_stack:
            cycle = ' -> '.join(str(p) for p in self._include_stack + [file_path])
            raise CircularIncludeError(f"Circular include detected: {cycle}")

        if file_path in self.cache:
            return dict(self.cache[file_path])

        self._include_stack.append(file_path)
        try:
            content = file_path.read_text()
            loader = self.yaml_loader(content)
            loader.current_file = file_path
            try:
                config = loader.get_single_data()
            finally:
                loader.dispose()
        finally:
            self._include_stack.pop()

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ValueError(f"Top level of {file_path} must be a mapping, got {type(config).__name__}")

        logger.debug("Loaded configuration %s", file_path)
        self.cache[file_path] = config
        return dict(config)

    def _resolve_path(self, path: Union[str, Path], relative_to: Path) -> Path:
        """
        Resolve an include path.

        Relative paths are tried against the including file's directory, then
        against the base path; the first candidate is returned when neither
        exists so the load fails with a meaningful path.
        """
        path = Path(path)
        if path.is_absolute():
            return path.resolve()

        candidates = [(relative_to / path).resolve(), (self.base_path / path).resolve()]
        for candidate in candidates:
            if candidate.exists():
                return candidate
        return candidates[0]


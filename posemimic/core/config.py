"""YAML configuration shared by every component"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml


CONFIG_FILENAME = "config.yaml"
CONFIG_ENV_VAR = "POSEMIMIC_CONFIG"


def _candidate_paths() -> Iterator[Path]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        yield Path(env_path)
    yield Path.cwd() / CONFIG_FILENAME
    for parent in list(Path(__file__).resolve().parents)[:4]:
        yield parent / CONFIG_FILENAME


class Config:
    """
    Process-wide configuration with dot-notation access.

    The first construction loads a file; later `Config()` calls return the
    same instance. Passing a path again reloads from that path.
    """

    _instance: Optional["Config"] = None

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._data = {}
            instance._path = None
            cls._instance = instance
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if config_path is not None:
            self._load(Path(config_path))
        elif self._path is None:
            self._load(self._locate())

    @staticmethod
    def _locate() -> Path:
        for path in _candidate_paths():
            if path.is_file():
                return path
        raise FileNotFoundError(
            f"{CONFIG_FILENAME} not found (set {CONFIG_ENV_VAR} or run from the project directory)"
        )

    def _load(self, path: Path) -> None:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        self._data: Dict[str, Any] = data if isinstance(data, dict) else {}
        self._path: Optional[Path] = path

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def reload(self) -> None:
        self._load(self._path)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a dotted key, e.g. `config.get("retarget.pose_space.mirror")`.

        Returns `default` as soon as any level is missing or not a mapping.
        """
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Override a dotted key in memory; `save()` persists it."""
        *parents, leaf = key.split(".")
        node = self._data
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value

    def save(self, path: Optional[str] = None) -> None:
        with open(path or self._path, "w") as f:
            yaml.safe_dump(self._data, f, default_flow_style=False, sort_keys=False)

    def section(self, name: str) -> Dict[str, Any]:
        """Copy of a top-level section, empty if absent."""
        value = self._data.get(name)
        return copy.deepcopy(value) if isinstance(value, dict) else {}

    @property
    def video(self) -> Dict[str, Any]:
        return self.section("video")

    @property
    def pose_estimation(self) -> Dict[str, Any]:
        return self.section("pose_estimation")

    @property
    def retarget(self) -> Dict[str, Any]:
        return self.section("retarget")

    @property
    def rig(self) -> Dict[str, Any]:
        return self.section("rig")

    @property
    def export(self) -> Dict[str, Any]:
        return self.section("export")

    def __repr__(self) -> str:
        return f"Config({self._path})"

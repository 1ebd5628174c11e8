"""YAML configuration loader for WalletWise.

Loads the seed config files from the config/ directory:
  categories.yaml, sources.yaml
"""

from pathlib import Path

import yaml


class Config:
    """Loads and provides access to the YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._categories: list[dict] | None = None
        self._sources: dict | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def categories(self) -> list[dict]:
        if self._categories is None:
            data = self._load("categories.yaml")
            self._categories = data.get("categories", []) if isinstance(data, dict) else data
        return self._categories

    @property
    def sources(self) -> dict[str, dict]:
        """SMS source identifier → wallet presentation (name, icon, type)."""
        if self._sources is None:
            data = self._load("sources.yaml")
            self._sources = data.get("sources", {}) if isinstance(data, dict) else {}
        return self._sources

    def source_config(self, source: str) -> dict | None:
        return self.sources.get(source)

"""Persisted platform config (VMM URL and secret env values).

The file is written by the `config` CLI and read by the updater at the
start of each cycle. There is no locking: a CLI write racing an updater
read can observe a partial file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pydantic
from pydantic import BaseModel

from .errors import PlatformConfigError

logger = logging.getLogger(__name__)

# Value injected into the VM when the platform config has no dstack_vmm_url.
DEFAULT_GUEST_VMM_URL = "http://10.0.2.2:10300/"
# Value the config CLI starts from when no config file exists yet.
DEFAULT_CLI_VMM_URL = "http://10.0.2.2:16850/"


class PlatformConfig(BaseModel):
    dstack_vmm_url: str | None = None
    env: dict[str, str] | None = None

    @classmethod
    def load(cls, path: str | Path) -> PlatformConfig:
        """Read and parse the config file.

        Raises:
            PlatformConfigError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PlatformConfigError(f"Failed to read {path}: {e}") from e

        try:
            return cls.model_validate_json(content)
        except pydantic.ValidationError as e:
            raise PlatformConfigError(f"Failed to parse config JSON in {path}: {e}") from e

    @classmethod
    def load_or_default(cls, path: str | Path) -> PlatformConfig:
        """Load the config, falling back to defaults with a warning."""
        try:
            return cls.load(path)
        except PlatformConfigError as e:
            logger.warning(f"Failed to load platform config: {e}, using defaults")
            return cls(dstack_vmm_url=DEFAULT_GUEST_VMM_URL)

    def save(self, path: str | Path) -> None:
        path = Path(path)
        try:
            path.write_text(json.dumps(self.model_dump(), indent=2), encoding="utf-8")
        except OSError as e:
            raise PlatformConfigError(f"Failed to write to {path}: {e}") from e

    def ensure_env_map(self) -> dict[str, str]:
        if self.env is None:
            self.env = {}
        return self.env

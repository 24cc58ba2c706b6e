"""Benchmark configuration (canonical definition for the runner and CLI)."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from tb_common.config.env import (
    parse_bool_env,
    parse_float_env,
    parse_int_env,
    parse_list_env,
)
from tb_common.errors import ConfigurationError
from tb_runner.catalog import DTYPES, BackendSpec
from tb_runner.models.version import VersionSpec, parse_version_spec


DEFAULT_CACHE_DIR = Path.home() / ".cache" / "tensorbench"
DEFAULT_REPOSITORY_URL = "https://github.com/tracel-ai/burn.git"
DEFAULT_RELEASE_INDEX_URL = "https://crates.io/api/v1/crates"
DEFAULT_SERVER_URL = "https://user-benchmark-server-gvtbw64teq-nn.a.run.app/"


class SelectionConfig(BaseModel):
    """Which slice of the run matrix to execute."""

    benches: List[str] = Field(default_factory=list, description="Bench suite ids")
    backends: List[str] = Field(default_factory=list, description="Backend ids")
    versions: List[str] = Field(default_factory=lambda: ["local"], description="Version specifiers")
    dtypes: List[str] = Field(default_factory=lambda: ["f32"], description="Element data types")

    model_config = {"extra": "ignore"}

    @field_validator("benches", "backends", "versions", "dtypes", mode="before")
    @classmethod
    def _split_strings(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("benches", "backends", "versions", "dtypes")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        seen: dict[str, None] = {}
        for item in value:
            seen.setdefault(item, None)
        return list(seen)

    @field_validator("dtypes")
    @classmethod
    def _known_dtypes(cls, value: List[str]) -> List[str]:
        unknown = [item for item in value if item not in DTYPES]
        if unknown:
            raise ValueError(f"Unknown dtypes: {', '.join(unknown)} (known: {', '.join(DTYPES)})")
        return value

    def version_specs(self) -> list[VersionSpec]:
        return [parse_version_spec(item) for item in self.versions]


class BackendConfig(BaseModel):
    """User-declared backend, extending or overriding the built-in catalog."""

    dtypes: List[str] = Field(default_factory=lambda: ["f32"])
    exclusive_hardware: bool = Field(default=True, description="Serialize measurements on this backend")
    features: List[str] = Field(default_factory=list, description="Cargo features enabling the backend")

    def to_spec(self, name: str) -> BackendSpec:
        return BackendSpec(
            name=name,
            dtypes=frozenset(self.dtypes),
            exclusive_hardware=self.exclusive_hardware,
            features=tuple(self.features),
        )


class ShareConfig(BaseModel):
    """Remote sharing endpoint and device-code login settings."""

    enabled: bool = Field(default=False, description="Upload the report after the run")
    server_url: str = Field(default=DEFAULT_SERVER_URL, description="Benchmark server base URL")
    client_id: str = Field(default="", description="OAuth client id for the device-code flow")
    device_code_url: str = Field(default="https://github.com/login/device/code")
    token_url: str = Field(default="https://github.com/login/oauth/access_token")
    scope: str = Field(default="read:user")
    login_timeout_seconds: float = Field(default=900.0, gt=0)
    token_path: Optional[Path] = Field(default=None, description="Override for the stored token file")
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)


class BenchmarkConfig(BaseModel):
    """Main configuration for a benchmark orchestration run."""

    selection: SelectionConfig = Field(default_factory=SelectionConfig)

    # Measurement parameters
    repetitions: int = Field(default=10, gt=0, description="Measured repetitions per run unit")
    warmup: int = Field(default=1, ge=0, description="Discarded warm-up repetitions per run unit")
    parallelism: int = Field(default=1, gt=0, description="Worker pool size")
    unit_timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Per-unit time allowance")
    global_timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Whole-run time allowance")

    # Sources
    local_dir: Optional[Path] = Field(default=None, description="Default local source checkout")
    repository_url: str = Field(default=DEFAULT_REPOSITORY_URL)
    crate_name: str = Field(default="burn", description="Crate looked up for published releases")
    release_index_url: str = Field(default=DEFAULT_RELEASE_INDEX_URL)
    bench_crate: str = Field(default="backend-comparison", description="Bench crate path inside a checkout")

    # Output
    cache_dir: Path = Field(default=DEFAULT_CACHE_DIR)
    output_dir: Path = Field(default=Path("./benchmark_results"))

    backends: Dict[str, BackendConfig] = Field(default_factory=dict)
    share: ShareConfig = Field(default_factory=ShareConfig)

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def _validate_versions(self) -> "BenchmarkConfig":
        try:
            self.selection.version_specs()
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc
        return self

    @property
    def checkout_dir(self) -> Path:
        return self.cache_dir / "checkouts"

    def backend_specs(self) -> dict[str, BackendSpec]:
        return {name: cfg.to_spec(name) for name, cfg in self.backends.items()}

    def ensure_output_dirs(self) -> None:
        for path in (self.output_dir, self.cache_dir):
            path.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BenchmarkConfig":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError("Invalid benchmark configuration", cause=exc) from exc

    @classmethod
    def load(cls, filepath: Path) -> "BenchmarkConfig":
        """Load a YAML or JSON config file."""
        if not filepath.exists():
            raise ConfigurationError(
                f"Configuration file not found: {filepath}", context={"path": filepath}
            )
        with open(filepath, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration root must be a mapping", context={"path": filepath}
            )
        return cls.from_dict(data)

    def save(self, filepath: Path) -> None:
        filepath.write_text(self.model_dump_json(indent=2))

    def with_env_overrides(self, environ: Optional[Dict[str, str]] = None) -> "BenchmarkConfig":
        """Return a copy with ``TB_*`` environment overrides applied."""
        env = os.environ if environ is None else environ
        update: dict[str, Any] = {}
        selection: dict[str, Any] = {}

        if env.get("TB_LOCAL_DIR"):
            update["local_dir"] = Path(env["TB_LOCAL_DIR"]).expanduser()
        if env.get("TB_CACHE_DIR"):
            update["cache_dir"] = Path(env["TB_CACHE_DIR"]).expanduser()
        if env.get("TB_REPOSITORY_URL"):
            update["repository_url"] = env["TB_REPOSITORY_URL"]
        repetitions = parse_int_env(env.get("TB_REPETITIONS"))
        if repetitions is not None:
            update["repetitions"] = repetitions
        parallelism = parse_int_env(env.get("TB_PARALLELISM"))
        if parallelism is not None:
            update["parallelism"] = parallelism
        global_timeout = parse_float_env(env.get("TB_GLOBAL_TIMEOUT"))
        if global_timeout is not None:
            update["global_timeout_seconds"] = global_timeout

        for key in ("benches", "backends", "versions", "dtypes"):
            values = parse_list_env(env.get(f"TB_{key.upper()}"))
            if values:
                selection[key] = values

        share: dict[str, Any] = {}
        share_enabled = parse_bool_env(env.get("TB_SHARE"))
        if share_enabled is not None:
            share["enabled"] = share_enabled
        if env.get("TB_SERVER_URL"):
            share["server_url"] = env["TB_SERVER_URL"]
        if env.get("TB_AUTH_CLIENT_ID"):
            share["client_id"] = env["TB_AUTH_CLIENT_ID"]

        return self.merged(update, selection=selection, share=share)

    def merged(
        self,
        update: Dict[str, Any],
        *,
        selection: Optional[Dict[str, Any]] = None,
        share: Optional[Dict[str, Any]] = None,
    ) -> "BenchmarkConfig":
        """Return a validated copy with the given overrides."""
        data = self.model_dump()
        data.update(update)
        if selection:
            data["selection"] = {**data["selection"], **selection}
        if share:
            data["share"] = {**data["share"], **share}
        return self.from_dict(data)


class TriggerFile(BaseModel):
    """Declarative run request consumed by CI glue.

    Only the selection matters to the runner; ``environment`` carries
    provisioning parameters for the external trigger and is kept verbatim.
    """

    environment: Dict[str, Any] = Field(default_factory=dict)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)

    @classmethod
    def load(cls, filepath: Path) -> "TriggerFile":
        try:
            data = tomllib.loads(filepath.read_text())
        except FileNotFoundError as exc:
            raise ConfigurationError(
                f"Trigger file not found: {filepath}", context={"path": filepath}, cause=exc
            ) from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(
                f"Invalid trigger file: {exc}", context={"path": filepath}, cause=exc
            ) from exc
        bench = data.get("benchmark") or data.get("burn-bench") or {}
        try:
            return cls(
                environment=data.get("environment") or {},
                selection=SelectionConfig.model_validate(bench),
            )
        except ValidationError as exc:
            raise ConfigurationError(
                "Invalid selection in trigger file", context={"path": filepath}, cause=exc
            ) from exc

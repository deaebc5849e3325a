"""Bridge configuration from an optional YAML file and SIMBRIDGE_* environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "SIMBRIDGE_"
GATEWAY_KINDS = ("kubernetes", "memory", "none")


@dataclass
class BridgeConfig:
	"""
	Runtime settings for the bridge.

	Precedence: environment variable > YAML file (SIMBRIDGE_CONFIG) > default.
	"""

	extender_url: str = "http://localhost:8081"
	extender_timeout_s: float = 10.0
	gateway: str = "kubernetes"  # kubernetes | memory | none
	kubeconfig: Optional[str] = None
	namespace: str = "default"
	schedule_interval_s: float = 0.5  # 0 disables the background ticker
	node_ready_attempts: int = 20
	node_ready_delay_s: float = 1.0
	schedule_attempts: int = 30
	schedule_delay_s: float = 1.0
	placement_attempts: int = 30
	placement_delay_s: float = 1.0
	log_level: str = "INFO"

	def __post_init__(self) -> None:
		self.gateway = (self.gateway or "none").lower()
		if self.gateway not in GATEWAY_KINDS:
			raise ValueError(f"unknown gateway '{self.gateway}', expected one of {GATEWAY_KINDS}")
		for name in ("node_ready_attempts", "schedule_attempts", "placement_attempts"):
			if getattr(self, name) < 1:
				raise ValueError(f"{name} must be at least 1")
		for name in ("extender_timeout_s", "schedule_interval_s", "node_ready_delay_s",
				"schedule_delay_s", "placement_delay_s"):
			if getattr(self, name) < 0:
				raise ValueError(f"{name} must not be negative")

	@classmethod
	def from_mapping(cls, values: Mapping[str, Any]) -> "BridgeConfig":
		"""Build a config from raw values, coercing each to its field type."""
		kwargs: Dict[str, Any] = {}
		for f in fields(cls):
			if f.name not in values or values[f.name] is None:
				continue
			raw = values[f.name]
			default = f.default
			try:
				if isinstance(default, bool):
					kwargs[f.name] = str(raw).lower() in ("1", "true", "yes", "on")
				elif isinstance(default, int):
					kwargs[f.name] = int(raw)
				elif isinstance(default, float):
					kwargs[f.name] = float(raw)
				else:
					kwargs[f.name] = str(raw)
			except (TypeError, ValueError):
				raise ValueError(f"invalid value for {f.name}: {raw!r}") from None
		return cls(**kwargs)

	@classmethod
	def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
		environ = os.environ if environ is None else environ
		values: Dict[str, Any] = {}

		config_path = environ.get(f"{ENV_PREFIX}CONFIG")
		if config_path:
			path = Path(config_path)
			data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
			if not isinstance(data, dict):
				raise ValueError(f"config file {path} must contain a mapping")
			values.update(data)
			logger.info(f"Loaded bridge config from {path}")

		for f in fields(cls):
			env_value = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
			if env_value is not None:
				values[f.name] = env_value

		return cls.from_mapping(values)

	def to_dict(self) -> Dict[str, Any]:
		return {f.name: getattr(self, f.name) for f in fields(self)}

"""Configuration record and store result models."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from gemini_metering.security.masking import mask_api_key, mask_email


@dataclass
class MeteringConfig:
    api_key: str
    endpoint: str  # Base URL, without the OTLP sub-path
    email: str | None = None
    organization_name: str | None = None
    product_name: str | None = None
    cost_multiplier: float | None = None  # None = backend default of 1


@dataclass
class WriteResult:
    env_path: Path
    fish_path: Path


class LoadStatus(str, Enum):
    LOADED = "loaded"
    MISSING = "missing"  # Neither dialect file exists
    UNPARSEABLE = "unparseable"  # A file exists but yields no credential


@dataclass
class LoadResult:
    status: LoadStatus
    config: MeteringConfig | None = None
    path: Path | None = None
    reason: str = ""

    def describe(self) -> list[str]:
        """Human-readable status lines with the API key and email masked."""
        if self.status == LoadStatus.MISSING:
            return ["No metering configuration found."]
        if self.status == LoadStatus.UNPARSEABLE or self.config is None:
            return [f"Configuration could not be read: {self.reason}"]

        config = self.config
        lines = [
            f"Configuration file: {self.path}",
            f"API key: {mask_api_key(config.api_key)}",
            f"Endpoint: {config.endpoint}",
        ]
        if config.email:
            lines.append(f"Email: {mask_email(config.email)}")
        if config.organization_name:
            lines.append(f"Organization: {config.organization_name}")
        if config.product_name:
            lines.append(f"Product: {config.product_name}")
        if config.cost_multiplier is not None:
            lines.append(f"Cost multiplier: {config.cost_multiplier}")
        return lines

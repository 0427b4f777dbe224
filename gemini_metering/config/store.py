"""Config store: the on-disk pair of shell files holding the metering config.

Both files describe the same configuration, one per shell dialect:
- ~/.gemini/revenium.env   POSIX shells (bash/zsh), export syntax
- ~/.gemini/revenium.fish  fish, set -gx syntax

Writes always replace both files wholesale. Loads prefer the dialect of
the active shell and fall back to the other one. There is no locking;
concurrent writers race and the last one wins. File I/O is small and
runs inline on the calling task.
"""

import math
import os
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from gemini_metering.config import constants as c
from gemini_metering.config.codec import (
    decode_fish,
    decode_posix,
    decode_resource_attributes,
    encode_fish,
    encode_posix,
    encode_resource_attributes,
)
from gemini_metering.config.models import (
    LoadResult,
    LoadStatus,
    MeteringConfig,
    WriteResult,
)
from gemini_metering.config.settings import get_settings
from gemini_metering.logging.audit import get_audit_logger
from gemini_metering.shell.detector import ShellType, detect_shell

_ATTRIBUTE_ORDER = (
    c.ATTR_API_KEY,
    c.ATTR_EMAIL,
    c.ATTR_ORGANIZATION,
    c.ATTR_PRODUCT,
    c.ATTR_COST_MULTIPLIER,
)

_FILE_HEADER = (
    "# Revenium metering configuration for Gemini CLI\n"
    "# Generated file; re-run setup instead of editing by hand.\n"
)


class ConfigWriteError(OSError):
    """One of the dialect files could not be written."""

    def __init__(self, path: Path, cause: OSError):
        super().__init__(f"Failed to write configuration file {path}: {cause.strerror or cause}")
        self.path = path


def get_full_otlp_endpoint(base_url: str) -> str:
    """https://api.revenium.ai/ -> https://api.revenium.ai/meter/v2/otlp"""
    clean = base_url[:-1] if base_url.endswith("/") else base_url
    return f"{clean}{c.OTLP_PATH}"


def extract_base_endpoint(full_endpoint: str) -> str:
    """Strip the OTLP sub-path (and anything after it) from a stored endpoint."""
    try:
        parts = urlsplit(full_endpoint)
    except ValueError:
        return full_endpoint
    if not parts.scheme or not parts.netloc:
        return full_endpoint

    path = parts.path
    for suffix in (c.OTLP_PATH, *c.LEGACY_OTLP_PATHS):
        index = path.find(suffix)
        if index != -1:
            path = path[:index]
            break
    return urlunsplit((parts.scheme, parts.netloc, path.rstrip("/"), "", ""))


def format_cost_multiplier(value: float | None) -> str:
    """1.0 -> "1", 0.8 -> "0.8"."""
    multiplier = c.DEFAULT_COST_MULTIPLIER if value is None else float(value)
    if multiplier.is_integer():
        return str(int(multiplier))
    return repr(multiplier)


def _parse_cost_multiplier(raw: str | None) -> float | None:
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


class ConfigStore:
    """Reads and writes the dual-dialect config files."""

    def __init__(self, config_dir: Path | str | None = None,
                 shell_type: ShellType | None = None):
        self._config_dir = Path(config_dir) if config_dir else get_settings().config_path
        self._shell_type = shell_type

    @property
    def env_path(self) -> Path:
        return self._config_dir / c.REVENIUM_ENV_FILE

    @property
    def fish_path(self) -> Path:
        return self._config_dir / c.REVENIUM_FISH_FILE

    @property
    def shell_type(self) -> ShellType:
        if self._shell_type is None:
            self._shell_type = detect_shell()
        return self._shell_type

    def exists(self) -> bool:
        """True if either dialect file exists, parseable or not."""
        return self.env_path.is_file() or self.fish_path.is_file()

    # --- Writing ---

    def build_variables(self, config: MeteringConfig) -> dict[str, str]:
        """Every variable the config files export, in file order."""
        attributes = {c.ATTR_API_KEY: config.api_key}
        if config.email:
            attributes[c.ATTR_EMAIL] = config.email
        if config.organization_name:
            attributes[c.ATTR_ORGANIZATION] = config.organization_name
        if config.product_name:
            attributes[c.ATTR_PRODUCT] = config.product_name
        attributes[c.ATTR_COST_MULTIPLIER] = format_cost_multiplier(config.cost_multiplier)

        variables = {
            c.TELEMETRY_ENABLED: "true",
            c.TELEMETRY_TARGET: "local",
            c.TELEMETRY_OTLP_ENDPOINT: get_full_otlp_endpoint(extract_base_endpoint(config.endpoint)),
            c.TELEMETRY_OTLP_PROTOCOL: "http",
            c.TELEMETRY_LOG_PROMPTS: "false",
            c.RESOURCE_ATTRIBUTES: encode_resource_attributes(attributes, _ATTRIBUTE_ORDER),
        }
        # Standalone copies for tooling that reads them directly
        if config.email:
            variables[c.SUBSCRIBER_EMAIL] = config.email
        if config.organization_name:
            variables[c.ORGANIZATION_NAME] = config.organization_name
        if config.product_name:
            variables[c.PRODUCT_NAME] = config.product_name
        if config.cost_multiplier is not None:
            variables[c.COST_MULTIPLIER] = format_cost_multiplier(config.cost_multiplier)
        return variables

    def render_posix(self, config: MeteringConfig) -> str:
        return _FILE_HEADER + "\n" + encode_posix(self.build_variables(config))

    def render_fish(self, config: MeteringConfig) -> str:
        return _FILE_HEADER + "\n" + encode_fish(self.build_variables(config))

    async def write(self, config: MeteringConfig) -> WriteResult:
        """Overwrite both dialect files.

        Best effort, not atomic: if the fish file fails after the env file
        was written, the error is still raised and the env file stays.
        """
        return self._write_sync(config)

    def _write_sync(self, config: MeteringConfig) -> WriteResult:
        if not self._config_dir.exists():
            self._config_dir.mkdir(parents=True, mode=c.CONFIG_DIR_MODE)
            # mkdir's mode is filtered by the umask
            os.chmod(self._config_dir, c.CONFIG_DIR_MODE)

        for path, body in ((self.env_path, self.render_posix(config)),
                           (self.fish_path, self.render_fish(config))):
            try:
                path.write_text(body, encoding="utf-8")
                path.chmod(c.CONFIG_FILE_MODE)
            except OSError as exc:
                get_audit_logger().error(
                    "Config write failed",
                    extra={"audit_data": {"path": str(path), "error": exc.strerror or str(exc)}},
                )
                raise ConfigWriteError(path, exc) from exc

        get_audit_logger().info(
            "Config written",
            extra={"audit_data": {"env_path": str(self.env_path), "fish_path": str(self.fish_path)}},
        )
        return WriteResult(env_path=self.env_path, fish_path=self.fish_path)

    # --- Loading ---

    def _candidate_paths(self) -> list[Path]:
        if self.shell_type == ShellType.FISH:
            return [self.fish_path, self.env_path]
        return [self.env_path, self.fish_path]

    async def load(self) -> MeteringConfig | None:
        """The stored config, or None when missing or unparseable."""
        result = await self.load_result()
        return result.config

    async def load_result(self) -> LoadResult:
        """Like load(), but tells "no file" apart from "file without a credential"."""
        return self._load_sync()

    def _load_sync(self) -> LoadResult:
        path = next((p for p in self._candidate_paths() if p.is_file()), None)
        if path is None:
            return LoadResult(status=LoadStatus.MISSING)

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            get_audit_logger().warning(
                "Config file unreadable",
                extra={"audit_data": {"path": str(path), "error": str(exc)}},
            )
            return LoadResult(status=LoadStatus.UNPARSEABLE, path=path, reason=f"Could not read {path}: {exc}")

        variables = decode_fish(content) if path.suffix == ".fish" else decode_posix(content)
        config = self.parse_variables(variables)
        if config is None:
            return LoadResult(
                status=LoadStatus.UNPARSEABLE,
                path=path,
                reason=f"No API key found in {c.RESOURCE_ATTRIBUTES} in {path}",
            )
        return LoadResult(status=LoadStatus.LOADED, config=config, path=path)

    @staticmethod
    def parse_variables(variables: dict[str, str]) -> MeteringConfig | None:
        """Rebuild a config record from decoded file variables.

        The composite attribute string wins over the standalone variables.
        """
        attributes = decode_resource_attributes(variables.get(c.RESOURCE_ATTRIBUTES, ""))
        api_key = attributes.get(c.ATTR_API_KEY, "")
        if not api_key:
            return None

        email = attributes.get(c.ATTR_EMAIL) or variables.get(c.SUBSCRIBER_EMAIL)
        organization = (
            attributes.get(c.ATTR_ORGANIZATION)
            or attributes.get(c.ATTR_LEGACY_ORGANIZATION)
            or variables.get(c.ORGANIZATION_NAME)
            or variables.get(c.LEGACY_ORGANIZATION_ID)
        )
        product = (
            attributes.get(c.ATTR_PRODUCT)
            or attributes.get(c.ATTR_LEGACY_PRODUCT)
            or variables.get(c.PRODUCT_NAME)
            or variables.get(c.LEGACY_PRODUCT_ID)
        )
        multiplier = _parse_cost_multiplier(
            attributes.get(c.ATTR_COST_MULTIPLIER) or variables.get(c.COST_MULTIPLIER)
        )

        return MeteringConfig(
            api_key=api_key,
            endpoint=extract_base_endpoint(variables.get(c.TELEMETRY_OTLP_ENDPOINT, "")),
            email=email or None,
            organization_name=organization or None,
            product_name=product or None,
            cost_multiplier=multiplier,
        )

    @staticmethod
    def is_environment_loaded(environ: Mapping[str, str] | None = None) -> bool:
        """Whether the current process already has the config exported.

        Looks at the environment, not the files. False means the user has
        to restart or re-source their shell.
        """
        env = os.environ if environ is None else environ
        return (
            env.get(c.TELEMETRY_ENABLED) == "true"
            and bool(env.get(c.TELEMETRY_OTLP_ENDPOINT))
            and bool(env.get(c.RESOURCE_ATTRIBUTES))
        )

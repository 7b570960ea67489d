"""Configuration loader for iisphpctl.

Configuration values are resolved from several sources, later sources winning:

1. Built-in defaults.
2. ``C:\\ProgramData\\iisphpctl\\config.yml`` (or an override path).
3. Environment variables prefixed with ``IISPHPCTL_``.
4. Explicit overrides supplied programmatically (used for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    set IISPHPCTL_SITE__PORT=8080
    set IISPHPCTL_DOWNLOADS__RETRIES=5

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import os
import re
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

from .models import DesiredConfiguration

ENV_PREFIX = "IISPHPCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

PHP_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
ALLOWED_SITE_STRATEGIES = {"reconcile", "recreate"}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SiteConfig:
    """Website and application pool identity."""

    name: str = "php.local"
    host_header: str = ""
    content_path: Path = Path("C:/inetpub/php.local")
    port: int = 80
    strategy: str = "reconcile"
    default_documents: tuple[str, ...] = ("index.php", "index.html", "index.htm")
    web_identity: str = "IUSR"

    @property
    def effective_host_header(self) -> str:
        """Return the host header, defaulting to the site name."""
        return self.host_header or self.name

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "name": self.name,
            "host_header": self.host_header,
            "content_path": str(self.content_path),
            "port": self.port,
            "strategy": self.strategy,
            "default_documents": list(self.default_documents),
            "web_identity": self.web_identity,
        }


@dataclass(frozen=True)
class PhpConfig:
    """Interpreter version and download settings."""

    version: str = "8.3.14"
    install_path: Path = Path("C:/PHP/8.3")
    download_base: str = "https://windows.php.net/downloads/releases"
    seed_ini: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "version": self.version,
            "install_path": str(self.install_path),
            "download_base": self.download_base,
            "seed_ini": self.seed_ini,
        }


@dataclass(frozen=True)
class FastCgiConfig:
    """FastCGI handler registration settings."""

    max_instances: int = 4
    handler_name: str = "PHP_via_FastCGI"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"max_instances": self.max_instances, "handler_name": self.handler_name}


@dataclass(frozen=True)
class PoolConfig:
    """Application pool runtime settings."""

    runtime_version: str = ""
    enable_32bit: bool = False
    settle_seconds: float = 2.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "runtime_version": self.runtime_version,
            "enable_32bit": self.enable_32bit,
            "settle_seconds": self.settle_seconds,
        }


@dataclass(frozen=True)
class VcRuntimeConfig:
    """Visual C++ redistributable source and detection pattern."""

    url: str = "https://aka.ms/vs/17/release/vc_redist.x64.exe"
    display_name: str = "Microsoft Visual C++ 2015-2022 Redistributable (x64)"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"url": self.url, "display_name": self.display_name}


@dataclass(frozen=True)
class DownloadsConfig:
    """Retry policy applied to HTTP downloads."""

    retries: int = 3
    backoff_factor: float = 1.0
    timeout: float | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "retries": self.retries,
            "backoff_factor": self.backoff_factor,
            "timeout": self.timeout,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for iisphpctl."""

    config_file: Path
    logs_dir: Path
    runtime_dir: Path
    temp_dir: Path | None
    lock_timeout: float
    powershell_bin: str
    features: tuple[str, ...]
    site: SiteConfig
    php: PhpConfig
    fastcgi: FastCgiConfig
    pool: PoolConfig
    vc_runtime: VcRuntimeConfig
    downloads: DownloadsConfig

    def desired_configuration(self) -> DesiredConfiguration:
        """Return the immutable per-run inputs derived from this config."""
        return DesiredConfiguration(
            site_name=self.site.name,
            host_header=self.site.effective_host_header,
            content_path=self.site.content_path,
            php_version=self.php.version,
            install_path=self.php.install_path,
            port=self.site.port,
            default_documents=self.site.default_documents,
            web_identity=self.site.web_identity,
            pool_runtime_version=self.pool.runtime_version,
            pool_enable_32bit=self.pool.enable_32bit,
        )

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "temp_dir": str(self.temp_dir) if self.temp_dir is not None else None,
            "lock_timeout": self.lock_timeout,
            "powershell_bin": self.powershell_bin,
            "features": list(self.features),
            "site": self.site.to_dict(),
            "php": self.php.to_dict(),
            "fastcgi": self.fastcgi.to_dict(),
            "pool": self.pool.to_dict(),
            "vc_runtime": self.vc_runtime.to_dict(),
            "downloads": self.downloads.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "C:/ProgramData/iisphpctl/config.yml",
    "logs_dir": "C:/ProgramData/iisphpctl/logs",
    "runtime_dir": "C:/ProgramData/iisphpctl/run",
    "temp_dir": None,
    "lock_timeout": 30.0,
    "powershell_bin": "powershell.exe",
    "features": [
        "IIS-WebServerRole",
        "IIS-WebServer",
        "IIS-CommonHttpFeatures",
        "IIS-DefaultDocument",
        "IIS-StaticContent",
        "IIS-CGI",
        "IIS-ManagementScriptingTools",
    ],
    "site": {
        "name": "php.local",
        "host_header": "",
        "content_path": "C:/inetpub/php.local",
        "port": 80,
        "strategy": "reconcile",
        "default_documents": ["index.php", "index.html", "index.htm"],
        "web_identity": "IUSR",
    },
    "php": {
        "version": "8.3.14",
        "install_path": "C:/PHP/8.3",
        "download_base": "https://windows.php.net/downloads/releases",
        "seed_ini": True,
    },
    "fastcgi": {
        "max_instances": 4,
        "handler_name": "PHP_via_FastCGI",
    },
    "pool": {
        "runtime_version": "",
        "enable_32bit": False,
        "settle_seconds": 2.0,
    },
    "vc_runtime": {
        "url": "https://aka.ms/vs/17/release/vc_redist.x64.exe",
        "display_name": "Microsoft Visual C++ 2015-2022 Redistributable (x64)",
    },
    "downloads": {
        "retries": 3,
        "backoff_factor": 1.0,
        "timeout": None,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_SECTION_KEYS: dict[str, set[str]] = {
    section: set(cast(Mapping[str, object], value).keys())
    for section, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, _deep_copy(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in _SECTION_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    site_map = _as_dict(raw.get("site"), "site")
    strategy = str(site_map.get("strategy", "reconcile"))
    if strategy not in ALLOWED_SITE_STRATEGIES:
        allowed = ", ".join(sorted(ALLOWED_SITE_STRATEGIES))
        raise ConfigError(f"Unsupported site strategy '{strategy}'. Allowed: {allowed}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    temp_value = raw.get("temp_dir")
    temp_dir = _to_path(temp_value) if temp_value not in (None, "") else None

    site_map = _as_dict(raw.get("site"), "site")
    name = _expect_name(site_map.get("name"), "site.name")
    port = _expect_int(site_map.get("port"), "site.port", default=80)
    if not 1 <= port <= 65535:
        raise ConfigError(f"site.port must be between 1 and 65535. Got {port}.")
    documents = tuple(
        _expect_name(item, f"site.default_documents[{index}]")
        for index, item in enumerate(
            _as_sequence(site_map.get("default_documents", []), "site.default_documents")
        )
    )
    if not documents:
        raise ConfigError("site.default_documents must list at least one file name.")
    site = SiteConfig(
        name=name,
        host_header=str(site_map.get("host_header") or "").strip(),
        content_path=_to_path(site_map.get("content_path")),
        port=port,
        strategy=str(site_map.get("strategy", "reconcile")),
        default_documents=documents,
        web_identity=_expect_name(site_map.get("web_identity"), "site.web_identity"),
    )

    php_map = _as_dict(raw.get("php"), "php")
    version = str(php_map.get("version", "")).strip()
    if not PHP_VERSION_PATTERN.match(version):
        raise ConfigError(
            f"php.version must be a dotted triplet such as 8.3.14. Got {version!r}."
        )
    php = PhpConfig(
        version=version,
        install_path=_to_path(php_map.get("install_path")),
        download_base=_expect_name(
            php_map.get("download_base"), "php.download_base"
        ).rstrip("/"),
        seed_ini=_expect_bool(php_map.get("seed_ini"), "php.seed_ini", default=True),
    )

    fastcgi_map = _as_dict(raw.get("fastcgi"), "fastcgi")
    max_instances = _expect_int(
        fastcgi_map.get("max_instances"), "fastcgi.max_instances", default=4
    )
    if max_instances < 0:
        raise ConfigError("fastcgi.max_instances must be non-negative.")
    fastcgi = FastCgiConfig(
        max_instances=max_instances,
        handler_name=_expect_name(fastcgi_map.get("handler_name"), "fastcgi.handler_name"),
    )

    pool_map = _as_dict(raw.get("pool"), "pool")
    settle = _expect_float(pool_map.get("settle_seconds"), "pool.settle_seconds", default=2.0)
    if settle < 0:
        raise ConfigError("pool.settle_seconds must be non-negative.")
    pool = PoolConfig(
        runtime_version=str(pool_map.get("runtime_version") or ""),
        enable_32bit=_expect_bool(
            pool_map.get("enable_32bit"), "pool.enable_32bit", default=False
        ),
        settle_seconds=settle,
    )

    vc_map = _as_dict(raw.get("vc_runtime"), "vc_runtime")
    vc_runtime = VcRuntimeConfig(
        url=_expect_name(vc_map.get("url"), "vc_runtime.url"),
        display_name=_expect_name(vc_map.get("display_name"), "vc_runtime.display_name"),
    )

    downloads_map = _as_dict(raw.get("downloads"), "downloads")
    retries = _expect_int(downloads_map.get("retries"), "downloads.retries", default=3)
    if retries < 0:
        raise ConfigError("downloads.retries must be non-negative.")
    timeout_raw = downloads_map.get("timeout")
    timeout = (
        _expect_positive_float(timeout_raw, "downloads.timeout", default=1.0)
        if timeout_raw is not None
        else None
    )
    downloads = DownloadsConfig(
        retries=retries,
        backoff_factor=_expect_float(
            downloads_map.get("backoff_factor"), "downloads.backoff_factor", default=1.0
        ),
        timeout=timeout,
    )

    features: list[str] = []
    for index, item in enumerate(_as_sequence(raw.get("features", []), "features")):
        feature = _expect_name(item, f"features[{index}]")
        if feature not in features:
            features.append(feature)

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        runtime_dir=_to_path(raw.get("runtime_dir")),
        temp_dir=temp_dir,
        lock_timeout=_expect_positive_float(
            raw.get("lock_timeout"), "lock_timeout", default=30.0
        ),
        powershell_bin=str(raw.get("powershell_bin", "powershell.exe")),
        features=tuple(features),
        site=site,
        php=php,
        fastcgi=fastcgi,
        pool=pool,
        vc_runtime=vc_runtime,
        downloads=downloads,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_name(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{label} must be a non-empty string.")
    return value.strip()


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_float(value: object | None, label: str, *, default: float) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.")


def _expect_positive_float(value: object | None, label: str, *, default: float) -> float:
    numeric = _expect_float(value, label, default=default)
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "DownloadsConfig",
    "FastCgiConfig",
    "PhpConfig",
    "PoolConfig",
    "SiteConfig",
    "VcRuntimeConfig",
    "load_config",
]

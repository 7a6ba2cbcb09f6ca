# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Project configuration and user settings.

Project configuration lives in ``berth.yaml``, found by walking up from
the working directory.  User settings follow the XDG Base Directory
Specification:

    ``$XDG_CONFIG_HOME/berth/settings.yaml``
    (typically ``~/.config/berth/settings.yaml``)

``$BERTH_CONFIG_DIR`` overrides the settings directory.  ``!env`` tags
resolve values from environment variables in both files.  A ``.env``
file in the settings directory is loaded once before settings are read,
so ``BERTH_HOST`` can be kept there.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, overload

import yaml
from dotenv import load_dotenv
from platformdirs import user_config_path

from berth.engine.names import validate_resource_name
from berth.errors import BerthError


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "berth"

#: Project config file name.
PROJECT_CONFIG_NAME = "berth.yaml"

#: User settings file name.
SETTINGS_NAME = "settings.yaml"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

_dotenv_loaded = False


class ConfigError(BerthError):
    """Invalid or unreadable configuration."""


def get_settings_dir() -> Path:
    """Return the user settings directory."""
    override = os.environ.get("BERTH_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return user_config_path(_APP_NAME)


def get_settings_path() -> Path:
    return get_settings_dir() / SETTINGS_NAME


def load_dotenv_once() -> None:
    """Load ``.env`` from the settings directory, once per process.

    Existing environment variables are not overwritten.
    """
    global _dotenv_loaded
    if _dotenv_loaded:
        return
    path = get_settings_dir() / ".env"
    if path.exists():
        load_dotenv(path)
        logger.debug("Loaded .env from %s", path)
    _dotenv_loaded = True


def reset_dotenv_state() -> None:
    """Reset the dotenv loaded state. For testing only."""
    global _dotenv_loaded
    _dotenv_loaded = False


# ── YAML loading ────────────────────────────────────────────────────


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


def _load_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            raw = yaml.load(f, Loader=_make_loader())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping: {path}")
    return raw


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


T = TypeVar("T")


@overload
def _resolve(value: object, coerce: type[T], *, default: T) -> T: ...


@overload
def _resolve(value: object, coerce: type[T]) -> T | None: ...


def _resolve(
    value: object, coerce: type[Any], *, default: object = None
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``bool``).
        default: Value used when *value* is absent or names an unset
            environment variable.

    Returns:
        The resolved, coerced value.
    """
    if isinstance(value, _EnvVar):
        value = os.environ.get(value.var_name)
    if value is None:
        return default
    if coerce is bool:
        return _coerce_bool(value)
    if isinstance(value, coerce):
        return value
    try:
        return coerce(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Cannot convert {value!r} to {coerce.__name__}"
        ) from e


def _section(raw: dict, key: str, source: Path) -> dict:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping in {source}")
    return value


# ── Config types ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectConfig:
    """Settings from a project's ``berth.yaml``.

    Attributes:
        project: Project key; namespaces container names and labels.
        image: Project default image (``build.image``).
        env: Extra environment for agent containers (``agent.env``).
        path: File the config was read from; None for defaults.
    """

    project: str = ""
    image: str = ""
    env: dict[str, str] = field(default_factory=dict)
    path: Path | None = None

    def __post_init__(self) -> None:
        if self.project:
            reason = validate_resource_name(self.project)
            if reason:
                raise ConfigError(f"Invalid project key: {reason}")

    @classmethod
    def from_yaml(cls, path: Path) -> "ProjectConfig":
        """Load a project config file.

        The project key falls back to the name of the directory holding
        the file.

        Raises:
            ConfigError: If the file is unreadable or invalid.
        """
        raw = _load_yaml(path)
        build = _section(raw, "build", path)
        agent = _section(raw, "agent", path)
        env = {
            str(k): _resolve(v, str, default="")
            for k, v in _section(agent, "env", path).items()
        }
        return cls(
            project=_resolve(
                raw.get("project"), str, default=path.parent.name
            ),
            image=_resolve(build.get("image"), str, default=""),
            env=env,
            path=path,
        )


@dataclass(frozen=True)
class UserSettings:
    """Per-user settings.

    Attributes:
        default_image: Image used for ``@`` when the project has none.
    """

    default_image: str = ""

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "UserSettings":
        """Load user settings; a missing file yields defaults."""
        if path is None:
            path = get_settings_path()
        if not path.exists():
            return cls()
        raw = _load_yaml(path)
        return cls(
            default_image=_resolve(
                raw.get("default_image"), str, default=""
            ),
        )


@dataclass(frozen=True)
class ResolvedConfig:
    """Configuration for one command invocation.

    Attributes:
        project_key: Project key, empty outside a project.
        project: Project config (defaults outside a project).
        settings: User settings.
        root: Project root directory, or None outside a project.
    """

    project_key: str
    project: ProjectConfig
    settings: UserSettings
    root: Path | None = None


def find_project_config(start: Path) -> Path | None:
    """Walk up from *start* looking for ``berth.yaml``."""
    current = start.resolve()
    for directory in (current, *current.parents):
        candidate = directory / PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
    return None


def load_config(workdir: Path | str | None = None) -> ResolvedConfig:
    """Resolve the project and user configuration for *workdir*.

    Args:
        workdir: Starting directory; defaults to the current directory.

    Returns:
        The resolved configuration.

    Raises:
        ConfigError: If a config file is invalid.
    """
    load_dotenv_once()
    start = Path(workdir) if workdir is not None else Path.cwd()
    settings = UserSettings.from_yaml()

    path = find_project_config(start)
    if path is None:
        logger.debug("No %s found above %s", PROJECT_CONFIG_NAME, start)
        return ResolvedConfig("", ProjectConfig(), settings)

    project = ProjectConfig.from_yaml(path)
    logger.debug("Loaded project %r from %s", project.project, path)
    return ResolvedConfig(project.project, project, settings, path.parent)

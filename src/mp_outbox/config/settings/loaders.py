"""Config settings – EnvSettingsLoader, DotenvSettingsLoader.

Each dataclass field ``name`` of a :class:`Settings` subclass with
``_prefix = "OUTBOX"`` is read from ``OUTBOX_NAME``. Values are coerced from
the field annotation; fields without a default are required.
"""
from __future__ import annotations

import abc
import dataclasses
import os
import typing
from collections.abc import Mapping
from typing import Any, TypeVar

from dotenv import load_dotenv

from mp_outbox.config.settings.base import Settings
from mp_outbox.config.validation import (
    ConfigError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)
from mp_outbox.observability.logging import get_logger

T = TypeVar("T", bound=Settings)

logger = get_logger(__name__)

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


class SettingsLoader(abc.ABC):
    """Port: load settings from an external source."""

    @abc.abstractmethod
    def load(self, settings_class: type[T]) -> T: ...


class EnvSettingsLoader(SettingsLoader):
    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def load(self, settings_class: type[T]) -> T:
        environ = os.environ if self._environ is None else self._environ
        prefix = getattr(settings_class, "_prefix", "").upper()
        hints = typing.get_type_hints(settings_class)
        fields = dataclasses.fields(settings_class)  # type: ignore[arg-type]
        kwargs: dict[str, Any] = {}

        for field in fields:
            env_key = _env_key(prefix, field.name)
            raw = environ.get(env_key)
            if raw is None:
                if (
                    field.default is dataclasses.MISSING
                    and field.default_factory is dataclasses.MISSING  # type: ignore[misc]
                ):
                    raise MissingRequiredSettingError(env_key)
                continue
            try:
                kwargs[field.name] = _coerce(raw, hints.get(field.name, str))
            except ValueError as exc:
                raise InvalidSettingValueError(env_key, raw, str(exc)) from exc

        if prefix:
            known = {_env_key(prefix, f.name) for f in fields}
            unknown = sorted(k for k in environ if k.startswith(f"{prefix}_") and k not in known)
            if unknown:
                logger.warning("config.unknown_settings", prefix=prefix, names=unknown)

        try:
            return settings_class(**kwargs)
        except ConfigError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Failed to load {settings_class.__name__}: {exc}", cause=exc) from exc


class DotenvSettingsLoader(SettingsLoader):
    """Load a ``.env`` file into the process environment, then read it."""

    def __init__(self, env_file: str = ".env", override: bool = False) -> None:
        self._env_file = env_file
        self._override = override

    def load(self, settings_class: type[T]) -> T:
        load_dotenv(self._env_file, override=self._override)
        return EnvSettingsLoader().load(settings_class)


def _env_key(prefix: str, name: str) -> str:
    return f"{prefix}_{name}".upper().lstrip("_")


def _coerce(value: str, type_hint: Any) -> Any:
    if type_hint is bool:
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"expected a boolean, got {value!r}")
    if type_hint is int:
        return int(value.replace("_", ""))
    if type_hint is float:
        return float(value)
    if typing.get_origin(type_hint) is list:
        return [v.strip() for v in value.split(",") if v.strip()]
    return value


__all__ = ["DotenvSettingsLoader", "EnvSettingsLoader", "SettingsLoader"]

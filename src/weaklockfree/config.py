"""Typed configuration loader for weak concurrent maps."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .contracts.error import BadInputError

CLEANER_MODES = ("thread", "inline", "manual")
DEFAULT_THREAD_NAME = "Reference cleaner thread"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _parse_bool(raw: Any, name: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        normalized = raw.strip().lower()
        if normalized in _TRUTHY:
            return True
        if normalized in _FALSY:
            return False
    raise BadInputError(f"{name} must be boolean")


@dataclass
class CleanerPolicy:
    mode: str = "thread"
    thread_name: str = DEFAULT_THREAD_NAME
    daemon: bool = True
    join_timeout: float = 1.0

    def validate(self) -> None:
        if not isinstance(self.mode, str) or self.mode not in CLEANER_MODES:
            raise BadInputError(
                "cleaner.mode must be 'thread', 'inline' or 'manual'",
                hint="'thread' starts a background worker; 'inline' drains on every call",
            )
        if not isinstance(self.thread_name, str) or not self.thread_name.strip():
            raise BadInputError("cleaner.thread_name must be a non-empty string")
        if isinstance(self.join_timeout, bool) or not isinstance(self.join_timeout, (int, float)):
            raise BadInputError("cleaner.join_timeout must be a number")
        if self.join_timeout < 0:
            raise BadInputError("cleaner.join_timeout must be >= 0")


@dataclass
class TablePolicy:
    stripes: int = 16

    def validate(self) -> None:
        if isinstance(self.stripes, bool) or not isinstance(self.stripes, int):
            raise BadInputError("table.stripes must be an integer")
        if self.stripes <= 0 or (self.stripes & (self.stripes - 1)) != 0:
            raise BadInputError("table.stripes must be a power of two > 0")


@dataclass
class AppConfig:
    cleaner: CleanerPolicy = field(default_factory=CleanerPolicy)
    table: TablePolicy = field(default_factory=TablePolicy)

    @classmethod
    def load(cls, path: Path | None) -> AppConfig:
        if path is None:
            cfg = cls()
        else:
            try:
                data = tomllib.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise BadInputError(f"Config file not found: {path}") from exc
            except tomllib.TOMLDecodeError as exc:
                raise BadInputError(f"Invalid TOML: {exc}") from exc
            cfg = cls.from_dict(data)
        cfg.apply_env_overrides(os.environ)
        cfg.validate()
        return cfg

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        cleaner_data = data.get("cleaner", {})
        if not isinstance(cleaner_data, dict):
            raise BadInputError("[cleaner] section must be a table")
        cleaner_kwargs = dict(cleaner_data)
        for name in ("mode", "thread_name"):
            if name in cleaner_kwargs and not isinstance(cleaner_kwargs[name], str):
                raise BadInputError(f"cleaner.{name} must be a string")
        if "mode" in cleaner_kwargs:
            cleaner_kwargs["mode"] = cleaner_kwargs["mode"].strip().lower()
        if "daemon" in cleaner_kwargs:
            cleaner_kwargs["daemon"] = _parse_bool(cleaner_kwargs["daemon"], "cleaner.daemon")
        if "join_timeout" in cleaner_kwargs:
            if isinstance(cleaner_kwargs["join_timeout"], bool):
                raise BadInputError("cleaner.join_timeout must be a number")
            try:
                cleaner_kwargs["join_timeout"] = float(cleaner_kwargs["join_timeout"])
            except (TypeError, ValueError) as exc:
                raise BadInputError("cleaner.join_timeout must be a number") from exc
        try:
            cleaner = CleanerPolicy(**cleaner_kwargs)
        except TypeError as exc:
            raise BadInputError(f"Unknown key in [cleaner]: {exc}") from exc

        table_data = data.get("table", {})
        if not isinstance(table_data, dict):
            raise BadInputError("[table] section must be a table")
        stripes = table_data.get("stripes")
        if stripes is not None and (isinstance(stripes, bool) or not isinstance(stripes, int)):
            raise BadInputError("table.stripes must be an integer")
        try:
            table = TablePolicy(**table_data)
        except TypeError as exc:
            raise BadInputError(f"Unknown key in [table]: {exc}") from exc
        return cls(cleaner=cleaner, table=table)

    def apply_env_overrides(self, env: Mapping[str, str]) -> None:
        cleaner_mapping: dict[str, tuple[str, Callable[[str], Any]]] = {
            "WEAKMAP_CLEANER_MODE": ("mode", lambda raw: raw.strip().lower()),
            "WEAKMAP_CLEANER_THREAD_NAME": ("thread_name", str),
            "WEAKMAP_JOIN_TIMEOUT": ("join_timeout", float),
        }
        for key, (attr, caster) in cleaner_mapping.items():
            raw_value = env.get(key)
            if raw_value is None:
                continue
            try:
                value = caster(raw_value)
            except ValueError as exc:
                raise BadInputError(f"Invalid env override {key}={raw_value!r}") from exc
            setattr(self.cleaner, attr, value)

        raw_daemon = env.get("WEAKMAP_CLEANER_DAEMON")
        if raw_daemon is not None:
            try:
                self.cleaner.daemon = _parse_bool(raw_daemon, "WEAKMAP_CLEANER_DAEMON")
            except BadInputError as exc:
                raise BadInputError(
                    f"Invalid env override WEAKMAP_CLEANER_DAEMON={raw_daemon!r}"
                ) from exc

        raw_stripes = env.get("WEAKMAP_STRIPES")
        if raw_stripes is not None:
            try:
                self.table.stripes = int(raw_stripes)
            except ValueError as exc:
                raise BadInputError(f"Invalid env override WEAKMAP_STRIPES={raw_stripes!r}") from exc

    def validate(self) -> None:
        self.cleaner.validate()
        self.table.validate()


def load_app_config(path: str | None) -> AppConfig:
    config_path = Path(path) if path else None
    return AppConfig.load(config_path)


__all__ = [
    "AppConfig",
    "CleanerPolicy",
    "TablePolicy",
    "CLEANER_MODES",
    "DEFAULT_THREAD_NAME",
    "load_app_config",
]

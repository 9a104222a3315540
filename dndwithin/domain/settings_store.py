"""
Global settings store - typed, cached access to the globalsettings table.

Settings are stored as strings and parsed on read. Every typed getter
returns the caller's default when the row is missing or does not parse,
so a corrupt setting can never crash a request or the dispatch worker.

Reads go through a small per-process TTL cache. Settings change rarely,
so serving a value up to ``ttl_seconds`` stale is acceptable.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, TypeVar
from uuid import UUID

from .models import (
    GetAllGlobalSettingsOptions,
    GlobalSetting,
    ValidationFailure,
    ValidationResult,
)
from .ports import Clock, GlobalSettingsRepository
from .validation import validate_global_setting, validate_setting_options

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SettingsCache:
    """In-memory TTL cache of setting rows (including known-missing names)."""

    def __init__(self, clock: Clock, ttl_seconds: int) -> None:
        self._clock = clock
        self._ttl = timedelta(seconds=ttl_seconds)
        self._entries: dict[str, tuple[datetime, GlobalSetting | None]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > timedelta(0)

    def get(self, name: str) -> tuple[bool, GlobalSetting | None]:
        """Return (hit, value). A hit may carry None for a cached miss."""
        entry = self._entries.get(name)
        if entry is None:
            return False, None
        stored_at, value = entry
        if self._clock.now() - stored_at >= self._ttl:
            self._entries.pop(name, None)
            return False, None
        return True, value

    def set(self, name: str, value: GlobalSetting | None) -> None:
        if self.enabled:
            self._entries[name] = (self._clock.now(), value)

    def evict(self, name: str) -> None:
        self._entries.pop(name, None)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_datetime(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CreateSettingResult:
    success: bool
    failures: list[ValidationFailure]


class GlobalSettingsService:
    """Typed accessors plus the administrative surface for global settings."""

    def __init__(
        self,
        repository: GlobalSettingsRepository,
        clock: Clock,
        cache_ttl_seconds: int = 60,
    ) -> None:
        self._repository = repository
        self._cache = SettingsCache(clock, cache_ttl_seconds)

    async def get_setting(self, name: str) -> GlobalSetting | None:
        """Return the raw setting row, served from cache when fresh."""
        hit, cached = self._cache.get(name)
        if hit:
            return cached
        setting = await self._repository.get(name)
        self._cache.set(name, setting)
        return setting

    async def get_bool(self, name: str, default: bool) -> bool:
        return await self._get_typed(name, default, _parse_bool)

    async def get_int(self, name: str, default: int) -> int:
        return await self._get_typed(name, default, lambda raw: int(raw.strip()))

    async def get_float(self, name: str, default: float) -> float:
        return await self._get_typed(name, default, lambda raw: float(raw.strip()))

    async def get_uuid(self, name: str, default: UUID) -> UUID:
        return await self._get_typed(name, default, lambda raw: UUID(raw.strip()))

    async def get_datetime(self, name: str, default: datetime) -> datetime:
        return await self._get_typed(name, default, _parse_datetime)

    async def get_str(self, name: str, default: str) -> str:
        return await self._get_typed(name, default, lambda raw: raw)

    async def _get_typed(self, name: str, default: T, parse: Callable[[str], T]) -> T:
        setting = await self.get_setting(name)
        if setting is None or setting.value is None:
            return default
        try:
            return parse(setting.value)
        except ValueError:
            logger.warning("Global setting %s has unparseable value; using default", name)
            return default

    async def create_setting(self, setting: GlobalSetting) -> CreateSettingResult:
        """Validate and insert a new setting. Duplicate names are a validation failure."""
        result = validate_global_setting(setting)
        if not result.is_valid:
            return CreateSettingResult(False, result.failures)

        created = await self._repository.create(setting)
        if not created:
            result.add("name", "A setting with this name already exists")
            return CreateSettingResult(False, result.failures)

        self._cache.evict(setting.name)
        logger.info("Global setting created: %s", setting.name)
        return CreateSettingResult(True, [])

    async def get_all(
        self, options: GetAllGlobalSettingsOptions
    ) -> tuple[ValidationResult, list[GlobalSetting]]:
        result = validate_setting_options(options)
        if not result.is_valid:
            return result, []
        return result, await self._repository.get_all(options)

    async def get_count(self, name: str | None) -> int:
        return await self._repository.get_count(name)

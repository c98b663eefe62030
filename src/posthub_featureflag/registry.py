"""FlagRegistry 実装"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any, Union

import structlog
from pydantic import ValidationError

from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .models import FeatureFlagSettings, FlagDefinition

logger = structlog.stdlib.get_logger(__name__)

FlagSource = Union[
    FeatureFlagSettings,
    Mapping[str, Any],
    Iterable[Union[FlagDefinition, Mapping[str, Any]]],
]


class FlagRegistry:
    """起動時に一度だけ構築される不変のフラグ定義マップ。

    名前の検索は大文字小文字を区別しない。構築後は変更されないため、
    複数スレッドからのロックなしの同時参照が安全。
    """

    def __init__(self, flags: Iterable[FlagDefinition] = ()) -> None:
        by_key: dict[str, FlagDefinition] = {}
        for flag in flags:
            existing = by_key.get(flag.key)
            if existing is not None:
                raise FeatureFlagError(
                    code=FeatureFlagErrorCodes.DUPLICATE_FLAG,
                    message=f"Duplicate feature flag: {flag.name!r} conflicts with {existing.name!r}",
                )
            by_key[flag.key] = flag
        self._flags: Mapping[str, FlagDefinition] = MappingProxyType(by_key)
        self._names: tuple[str, ...] = tuple(f.name for f in by_key.values())

    @classmethod
    def load(cls, config: FlagSource) -> FlagRegistry:
        """設定からレジストリを構築する。

        config には FeatureFlagSettings、その形の辞書、またはフラグレコードの
        シーケンスを渡せる。不正な設定は FeatureFlagError として即座に失敗する。
        """
        if isinstance(config, FeatureFlagSettings):
            flags = config.flags
        elif isinstance(config, Mapping):
            flags = _to_settings(config).flags
        else:
            flags = [_to_definition(r) for r in config]
        registry = cls(flags)
        logger.debug("feature flag registry loaded", flag_count=len(registry))
        return registry

    def lookup(self, name: str) -> FlagDefinition | None:
        """名前 (大文字小文字無視の完全一致) でフラグを取得する。"""
        return self._flags.get(name.casefold())

    def exists(self, name: str) -> bool:
        return self.lookup(name) is not None

    def all_names(self) -> tuple[str, ...]:
        """設定順のフラグ名一覧。"""
        return self._names

    def __len__(self) -> int:
        return len(self._flags)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.exists(name)

    def __iter__(self) -> Iterator[FlagDefinition]:
        return iter(self._flags.values())


def _to_settings(config: Mapping[str, Any]) -> FeatureFlagSettings:
    try:
        return FeatureFlagSettings.model_validate(dict(config))
    except ValidationError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.VALIDATION,
            message=f"Invalid feature flag settings: {e}",
            cause=e,
        ) from e


def _to_definition(record: FlagDefinition | Mapping[str, Any]) -> FlagDefinition:
    if isinstance(record, FlagDefinition):
        return record
    try:
        return FlagDefinition.model_validate(record)
    except ValidationError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.VALIDATION,
            message=f"Invalid feature flag definition: {e}",
            cause=e,
        ) from e

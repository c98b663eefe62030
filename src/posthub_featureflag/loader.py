"""フラグ設定ファイル読み込み"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .evaluator import FeatureFlagEvaluator
from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .logger import logger_from_settings
from .models import FeatureFlagSettings
from .registry import FlagRegistry

SECTION_NAME = "feature_flags"


def _read_yaml(path: Path) -> dict[str, Any]:
    """YAML ファイルを読み込み、feature_flags セクションを返す。"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.READ_FILE,
            message=f"Failed to read feature flag config: {path}",
            cause=e,
        ) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.VALIDATION,
            message=f"Feature flag config must be a mapping: {path}",
        )
    section = data.get(SECTION_NAME, data)
    if not isinstance(section, dict):
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.VALIDATION,
            message=f"'{SECTION_NAME}' section must be a mapping: {path}",
        )
    return section


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """base に override を重ねた新しい設定辞書を返す。

    flags はフラグ名 (大文字小文字無視) 単位でマージし、同名フラグは
    override 側のフィールドで上書き (name の表記は base のまま)、
    新しいフラグは末尾に追加する。
    それ以外のネストした辞書は再帰的にマージする。
    """
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key == "flags" and isinstance(result.get(key), list) and isinstance(value, list):
            result[key] = _merge_flags(result[key], value)
        elif key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_settings(result[key], value)
        else:
            result[key] = value
    return result


def _merge_flags(base: list[Any], override: list[Any]) -> list[Any]:
    merged: list[Any] = list(base)
    index = {_flag_key(f): i for i, f in enumerate(merged) if _flag_key(f) is not None}
    for flag in override:
        key = _flag_key(flag)
        if key is not None and key in index:
            # 登録名はハッシュ入力のため base 側の表記を維持する
            base_record = merged[index[key]]
            merged[index[key]] = {**base_record, **flag, "name": base_record["name"]}
        else:
            if key is not None:
                index[key] = len(merged)
            merged.append(flag)
    return merged


def _flag_key(record: Any) -> str | None:
    if isinstance(record, dict) and isinstance(record.get("name"), str):
        return record["name"].strip().casefold()
    return None


def load_settings(base_path: Path, env_path: Path | None = None) -> FeatureFlagSettings:
    """設定ファイルを読み込んで FeatureFlagSettings を返す。

    base_path: ベース設定ファイルパス（必須）
    env_path: 環境別設定ファイルパス（オプション）。存在する場合はベースにマージ。
    """
    data = _read_yaml(base_path)
    if env_path is not None and env_path.exists():
        data = merge_settings(data, _read_yaml(env_path))
    try:
        return FeatureFlagSettings.model_validate(data)
    except ValidationError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.VALIDATION,
            message=f"Feature flag config validation failed: {e}",
            cause=e,
        ) from e


def load_registry(base_path: Path, env_path: Path | None = None) -> FlagRegistry:
    """設定ファイルから FlagRegistry を構築する。"""
    return FlagRegistry.load(load_settings(base_path, env_path))


def build_evaluator(
    base_path: Path,
    env_path: Path | None = None,
    configure_logging: bool = True,
) -> FeatureFlagEvaluator:
    """起動時に呼び出す。設定が不正な場合は FeatureFlagError を送出する。

    configure_logging が True の場合は設定の log セクションで structlog を構成する。
    """
    settings = load_settings(base_path, env_path)
    registry = FlagRegistry.load(settings)
    if configure_logging:
        logger = logger_from_settings(settings.log)
        logger.info(
            "feature flags loaded",
            environment=settings.environment,
            flag_count=len(registry),
        )
    return FeatureFlagEvaluator(registry)

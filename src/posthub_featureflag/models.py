"""featureflag データモデル"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .hashing import ANONYMOUS_USER


class FlagDefinition(BaseModel):
    """フィーチャーフラグ定義。起動時に設定から生成され、以後変更されない。

    設定ファイルでは camelCase (rolloutPercentage, allowedUsers) と
    snake_case のどちらのキーも受け付ける。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    name: str
    enabled: bool = False
    description: str | None = None
    rollout_percentage: int | None = Field(
        default=None, ge=0, le=100, alias="rolloutPercentage"
    )
    variants: tuple[str, ...] | None = None
    allowed_users: frozenset[str] = Field(default_factory=frozenset, alias="allowedUsers")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name cannot be blank")
        return value

    @field_validator("variants")
    @classmethod
    def _check_variants(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if value is None:
            return None
        if not value:
            raise ValueError("variants must not be empty when specified")
        if any(not v.strip() for v in value):
            raise ValueError("variant names cannot be blank")
        return value

    @field_validator("allowed_users", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return frozenset() if value is None else value

    @property
    def key(self) -> str:
        """大文字小文字を区別しない検索キー。"""
        return self.name.casefold()


class LogSettings(BaseModel):
    """ログ設定。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class FeatureFlagSettings(BaseModel):
    """フィーチャーフラグ設定全体。"""

    model_config = ConfigDict(extra="forbid")

    environment: str = "development"
    flags: list[FlagDefinition] = Field(default_factory=list)
    log: LogSettings = Field(default_factory=LogSettings)
    # None の場合は development 環境のみデバッグヘッダーを付与する
    expose_flags_header: bool | None = None

    @property
    def flags_header_exposed(self) -> bool:
        if self.expose_flags_header is not None:
            return self.expose_flags_header
        return self.environment == "development"


@dataclass(frozen=True)
class EvaluationContext:
    """フラグ評価コンテキスト。呼び出しごとに生成して破棄する。"""

    feature_name: str
    user_id: str | None = None

    @property
    def identity(self) -> str:
        """ハッシュ計算に使う識別子。未認証なら "anonymous"。"""
        return self.user_id or ANONYMOUS_USER


class EvaluationReason:
    """評価結果の理由コード定数。"""

    FLAG_NOT_FOUND: str = "FLAG_NOT_FOUND"
    ALLOW_LIST: str = "ALLOW_LIST"
    FLAG_DISABLED: str = "FLAG_DISABLED"
    FLAG_ENABLED: str = "FLAG_ENABLED"
    ROLLOUT_INCLUDED: str = "ROLLOUT_INCLUDED"
    ROLLOUT_EXCLUDED: str = "ROLLOUT_EXCLUDED"


@dataclass
class EvaluationResult:
    """フラグ評価結果。"""

    flag_key: str
    enabled: bool
    variant: str | None = None
    reason: str = ""


@dataclass
class FlagStatus:
    """ユーザーごとのフラグ一覧の 1 行。"""

    name: str
    enabled: bool
    variant: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "enabled": self.enabled, "variant": self.variant}

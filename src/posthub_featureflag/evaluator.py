"""FeatureFlagEvaluator 実装"""

from __future__ import annotations

import structlog

from .hashing import stable_hash
from .models import (
    EvaluationContext,
    EvaluationReason,
    EvaluationResult,
    FlagDefinition,
    FlagStatus,
)
from .registry import FlagRegistry

logger = structlog.stdlib.get_logger(__name__)


class FeatureFlagEvaluator:
    """フラグの有効判定とバリアント割り当てを行うステートレスな評価器。

    同じ設定・同じ (フラグ, ユーザー) の組に対しては常に同じ結果を返す。
    ロールアウト判定は bucket < rollout_percentage で行うため、
    0% は誰も含まず、100% は全員を含む。
    """

    def __init__(self, registry: FlagRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> FlagRegistry:
        return self._registry

    def exists(self, feature_name: str) -> bool:
        return self._registry.exists(feature_name)

    def is_enabled(self, feature_name: str, user_id: str | None = None) -> bool:
        """フラグがユーザーに対して有効か判定する。未登録フラグは False。"""
        return self.evaluate(feature_name, user_id).enabled

    def get_variant(self, feature_name: str, user_id: str | None = None) -> str | None:
        """A/B テストのバリアントを返す。無効・ロールアウト対象外・バリアント未設定なら None。"""
        return self.evaluate(feature_name, user_id).variant

    def get_all_flags(self, user_id: str | None = None) -> dict[str, bool]:
        """全フラグの有効状態を設定順で返す。"""
        return {
            flag.name: self._decide(flag, EvaluationContext(flag.name, user_id))[0]
            for flag in self._registry
        }

    def describe_flags(self, user_id: str | None = None) -> list[FlagStatus]:
        """全フラグの有効状態と割り当てバリアントを設定順で返す。"""
        statuses = []
        for flag in self._registry:
            result = self._evaluate_flag(flag, EvaluationContext(flag.name, user_id))
            statuses.append(FlagStatus(name=flag.name, enabled=result.enabled, variant=result.variant))
        return statuses

    def evaluate(self, feature_name: str, user_id: str | None = None) -> EvaluationResult:
        """フラグを評価して有効状態・バリアント・理由をまとめて返す。"""
        flag = self._registry.lookup(feature_name)
        if flag is None:
            logger.warning("feature flag not found, treating as disabled", feature=feature_name)
            return EvaluationResult(
                flag_key=feature_name,
                enabled=False,
                reason=EvaluationReason.FLAG_NOT_FOUND,
            )
        return self._evaluate_flag(flag, EvaluationContext(feature_name, user_id))

    def _evaluate_flag(self, flag: FlagDefinition, ctx: EvaluationContext) -> EvaluationResult:
        enabled, reason = self._decide(flag, ctx)
        variant = self._assign_variant(flag, ctx) if enabled and flag.enabled else None
        return EvaluationResult(flag_key=flag.name, enabled=enabled, variant=variant, reason=reason)

    def _decide(self, flag: FlagDefinition, ctx: EvaluationContext) -> tuple[bool, str]:
        # 許可リストはグローバルスイッチより優先する
        if ctx.user_id and ctx.user_id in flag.allowed_users:
            logger.debug("feature enabled by allow list", feature=flag.name, user_id=ctx.user_id)
            return True, EvaluationReason.ALLOW_LIST

        if not flag.enabled:
            return False, EvaluationReason.FLAG_DISABLED

        if flag.rollout_percentage is None:
            return True, EvaluationReason.FLAG_ENABLED

        bucket = stable_hash(flag.name, ctx.identity)
        included = bucket < flag.rollout_percentage
        logger.debug(
            "feature rollout check",
            feature=flag.name,
            user_id=ctx.identity,
            included=included,
            bucket=bucket,
            threshold=flag.rollout_percentage,
        )
        if included:
            return True, EvaluationReason.ROLLOUT_INCLUDED
        return False, EvaluationReason.ROLLOUT_EXCLUDED

    def _assign_variant(self, flag: FlagDefinition, ctx: EvaluationContext) -> str | None:
        if not flag.variants:
            return None
        bucket = stable_hash(flag.name, ctx.identity)
        variant = flag.variants[bucket % len(flag.variants)]
        logger.debug(
            "feature variant assigned", feature=flag.name, variant=variant, user_id=ctx.identity
        )
        return variant

"""フィーチャーフラグによるエンドポイントのゲート判定"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .client import FeatureFlagEvaluatorProtocol
from .propagation import get_current_user_id


class GateOutcome(str, Enum):
    """ゲート判定の結果。"""

    ALLOWED = "allowed"
    NOT_CONFIGURED = "not_configured"
    NOT_AVAILABLE = "not_available"
    VARIANT_NOT_ASSIGNED = "variant_not_assigned"


@dataclass
class GateDecision:
    """ゲート判定結果とレスポンスに使う情報。"""

    outcome: GateOutcome
    feature: str
    status_code: int = 200
    body: dict[str, Any] = field(default_factory=dict)
    variant: str | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome is GateOutcome.ALLOWED


def check_feature_gate(
    evaluator: FeatureFlagEvaluatorProtocol,
    feature_name: str,
    user_id: str | None = None,
    required_variant: str | None = None,
) -> GateDecision:
    """フラグの存在・有効状態・要求バリアントを順に確認する。

    拒否はすべて 404 として返す。
    """
    if not evaluator.exists(feature_name):
        return GateDecision(
            outcome=GateOutcome.NOT_CONFIGURED,
            feature=feature_name,
            status_code=404,
            body={"error": f"Feature '{feature_name}' not configured"},
        )

    if not evaluator.is_enabled(feature_name, user_id):
        return GateDecision(
            outcome=GateOutcome.NOT_AVAILABLE,
            feature=feature_name,
            status_code=404,
            body={"error": "Feature not available", "feature": feature_name},
        )

    variant = evaluator.get_variant(feature_name, user_id)
    if required_variant and variant != required_variant:
        return GateDecision(
            outcome=GateOutcome.VARIANT_NOT_ASSIGNED,
            feature=feature_name,
            status_code=404,
            body={
                "error": "Feature variant not assigned",
                "feature": feature_name,
                "requiredVariant": required_variant,
                "assignedVariant": variant,
            },
            variant=variant,
        )

    return GateDecision(outcome=GateOutcome.ALLOWED, feature=feature_name, variant=variant)


class FeatureGate:
    """エンドポイントごとに宣言して使うゲート。

    user_id を省略した場合は propagation でセットされた現在の利用者 ID を使う。
    """

    def __init__(self, feature_name: str, required_variant: str | None = None) -> None:
        self.feature_name = feature_name
        self.required_variant = required_variant

    def check(
        self, evaluator: FeatureFlagEvaluatorProtocol, user_id: str | None = None
    ) -> GateDecision:
        if user_id is None:
            user_id = get_current_user_id()
        return check_feature_gate(evaluator, self.feature_name, user_id, self.required_variant)

"""FeatureFlagEvaluator プロトコル"""

from __future__ import annotations

from typing import Protocol


class FeatureFlagEvaluatorProtocol(Protocol):
    """ゲートやホスト側コードが依存するフラグ評価の公開インターフェース。"""

    def is_enabled(self, feature_name: str, user_id: str | None = None) -> bool: ...

    def get_variant(self, feature_name: str, user_id: str | None = None) -> str | None: ...

    def get_all_flags(self, user_id: str | None = None) -> dict[str, bool]: ...

    def exists(self, feature_name: str) -> bool: ...

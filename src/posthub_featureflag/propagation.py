"""contextvars を使ったリクエスト単位の利用者 ID 伝播"""

from __future__ import annotations

import contextvars
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import structlog

from .client import FeatureFlagEvaluatorProtocol
from .hashing import ANONYMOUS_USER
from .models import FeatureFlagSettings

X_FEATURE_FLAGS = "X-Feature-Flags"

_user_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "feature_flag_user_id", default=None
)


@dataclass(frozen=True)
class UserIdToken:
    """set_current_user_id が返すリセット用トークン。"""

    user_id: contextvars.Token[str | None]
    log: Mapping[str, contextvars.Token[Any]]


def set_current_user_id(user_id: str | None) -> UserIdToken:
    """現在のコンテキストに認証済み利用者 ID をセットし、ログにも紐付ける。"""
    log_tokens = structlog.contextvars.bind_contextvars(user_id=user_id or ANONYMOUS_USER)
    return UserIdToken(user_id=_user_id_var.set(user_id), log=log_tokens)


def get_current_user_id() -> str | None:
    """現在のコンテキストから利用者 ID を取得する。未認証なら None。"""
    return _user_id_var.get()


def reset_current_user_id(token: UserIdToken) -> None:
    """set_current_user_id で取得したトークンで直前の状態に戻す。"""
    _user_id_var.reset(token.user_id)
    structlog.contextvars.reset_contextvars(**token.log)


def inject_flags_header(
    evaluator: FeatureFlagEvaluatorProtocol,
    headers: MutableMapping[str, str],
    user_id: str | None = None,
) -> None:
    """有効なフラグ名をカンマ区切りで X-Feature-Flags ヘッダーに注入する（in-place）。"""
    flags = evaluator.get_all_flags(user_id)
    headers[X_FEATURE_FLAGS] = ",".join(name for name, enabled in flags.items() if enabled)


class FeatureFlagRequestScope:
    """1 リクエスト分の利用者 ID を保持するスコープ。

    with FeatureFlagRequestScope(evaluator, settings, user_id) as scope:
        ...
        response.headers.update(scope.response_headers())
    """

    def __init__(
        self,
        evaluator: FeatureFlagEvaluatorProtocol,
        settings: FeatureFlagSettings,
        user_id: str | None = None,
    ) -> None:
        self._evaluator = evaluator
        self._settings = settings
        self.user_id = user_id
        self._token: UserIdToken | None = None

    def __enter__(self) -> FeatureFlagRequestScope:
        self._token = set_current_user_id(self.user_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            reset_current_user_id(self._token)
            self._token = None

    def response_headers(self) -> dict[str, str]:
        """レスポンスに付与するヘッダー。開発環境以外では空。"""
        headers: dict[str, str] = {}
        if self._settings.flags_header_exposed:
            inject_flags_header(self._evaluator, headers, self.user_id)
        return headers

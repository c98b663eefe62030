"""フラグ評価用の安定ハッシュ"""

from __future__ import annotations

import hashlib

ANONYMOUS_USER = "anonymous"
BUCKET_COUNT = 100


def stable_hash(feature_name: str, user_id: str | None = None) -> int:
    """(フラグ名, ユーザーID) から 0〜99 のバケット番号を返す。

    入力は "<feature_name>:<user_id>" の UTF-8 バイト列。user_id が None または空文字の
    場合は "anonymous" として扱う。MD5 ダイジェストの先頭 4 バイトを符号なし
    リトルエンディアン 32bit 整数として読み、100 で割った余りを返す。
    プロセスや実行をまたいで同じ入力には必ず同じ値を返す。
    FeatureFlagEvaluator は呼び出し側の表記ではなく登録済みのフラグ名を渡す。
    """
    key = f"{feature_name}:{user_id or ANONYMOUS_USER}"
    digest = hashlib.md5(key.encode("utf-8"), usedforsecurity=False).digest()  # nosec B324
    return int.from_bytes(digest[:4], "little", signed=False) % BUCKET_COUNT

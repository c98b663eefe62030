"""フラグ設定ローダーのユニットテスト"""

from pathlib import Path

import pytest
from posthub_featureflag import FeatureFlagEvaluator
from posthub_featureflag.exceptions import FeatureFlagError, FeatureFlagErrorCodes
from posthub_featureflag.loader import (
    build_evaluator,
    load_registry,
    load_settings,
    merge_settings,
)

BASE_YAML = """\
feature_flags:
  environment: production
  log:
    level: DEBUG
    format: text
  flags:
    - name: NewFeature
      enabled: true
      description: New experimental feature
      rolloutPercentage: 50
      allowedUsers:
        - admin@example.com
    - name: ABTestFeature
      enabled: true
      variants: [control, variant-a, variant-b]
"""


def write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_load_settings(tmp_path: Path) -> None:
    """feature_flags セクションの読み込み。"""
    settings = load_settings(write(tmp_path, "flags.yaml", BASE_YAML))
    assert settings.environment == "production"
    assert settings.log.level == "DEBUG"
    assert settings.log.format == "text"
    assert [f.name for f in settings.flags] == ["NewFeature", "ABTestFeature"]
    assert settings.flags[0].rollout_percentage == 50
    assert settings.flags[0].allowed_users == frozenset({"admin@example.com"})
    assert settings.flags[1].variants == ("control", "variant-a", "variant-b")


def test_load_settings_without_section(tmp_path: Path) -> None:
    """feature_flags セクションがなければ文書全体を設定として扱うこと。"""
    path = write(tmp_path, "flags.yaml", "flags:\n  - name: Solo\n    enabled: true\n")
    settings = load_settings(path)
    assert settings.flags[0].name == "Solo"
    assert settings.environment == "development"


def test_load_empty_file(tmp_path: Path) -> None:
    """空ファイルはフラグなしの設定になること。"""
    settings = load_settings(write(tmp_path, "empty.yaml", ""))
    assert settings.flags == []


def test_load_with_env_override(tmp_path: Path) -> None:
    """環境別設定がフラグ名単位でマージされること。"""
    base = write(tmp_path, "base.yaml", BASE_YAML)
    env = write(
        tmp_path,
        "prod.yaml",
        "feature_flags:\n"
        "  log:\n"
        "    level: WARNING\n"
        "  flags:\n"
        "    - name: newfeature\n"
        "      rolloutPercentage: 10\n"
        "    - name: Extra\n"
        "      enabled: true\n",
    )
    settings = load_settings(base, env)
    assert settings.log.level == "WARNING"
    assert settings.log.format == "text"
    assert [f.name for f in settings.flags] == ["NewFeature", "ABTestFeature", "Extra"]
    new_feature = settings.flags[0]
    assert new_feature.rollout_percentage == 10
    assert new_feature.enabled is True
    assert "admin@example.com" in new_feature.allowed_users


def test_load_env_not_exists(tmp_path: Path) -> None:
    """env_path が存在しない場合は base のみ使用。"""
    settings = load_settings(write(tmp_path, "base.yaml", BASE_YAML), tmp_path / "none.yaml")
    assert len(settings.flags) == 2


def test_load_file_not_found(tmp_path: Path) -> None:
    """存在しないファイルで FeatureFlagError(READ_FILE_ERROR) が発生すること。"""
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(tmp_path / "missing.yaml")
    assert exc_info.value.code == FeatureFlagErrorCodes.READ_FILE


def test_load_invalid_yaml(tmp_path: Path) -> None:
    """不正 YAML で FeatureFlagError(PARSE_YAML_ERROR) が発生すること。"""
    path = write(tmp_path, "bad.yaml", "feature_flags: {invalid: yaml: content:\n")
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(path)
    assert exc_info.value.code == FeatureFlagErrorCodes.PARSE_YAML


def test_load_non_mapping_document(tmp_path: Path) -> None:
    """マッピングでない文書は VALIDATION_ERROR になること。"""
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(write(tmp_path, "list.yaml", "- a\n- b\n"))
    assert exc_info.value.code == FeatureFlagErrorCodes.VALIDATION


def test_load_validation_error(tmp_path: Path) -> None:
    """バリデーション失敗で FeatureFlagError(VALIDATION_ERROR) が発生すること。"""
    path = write(
        tmp_path, "bad.yaml", "feature_flags:\n  flags:\n    - name: F\n      rolloutPercentage: 200\n"
    )
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(path)
    assert exc_info.value.code == FeatureFlagErrorCodes.VALIDATION


def test_load_registry_duplicate_names(tmp_path: Path) -> None:
    """重複したフラグ名で DUPLICATE_FLAG が発生すること。"""
    path = write(
        tmp_path, "dup.yaml", "feature_flags:\n  flags:\n    - name: Dup\n    - name: DUP\n"
    )
    with pytest.raises(FeatureFlagError) as exc_info:
        load_registry(path)
    assert exc_info.value.code == FeatureFlagErrorCodes.DUPLICATE_FLAG


def test_build_evaluator(tmp_path: Path) -> None:
    """設定ファイルから評価器を構築できること。"""
    evaluator = build_evaluator(write(tmp_path, "flags.yaml", BASE_YAML))
    assert isinstance(evaluator, FeatureFlagEvaluator)
    assert evaluator.exists("abtestfeature")
    assert evaluator.is_enabled("NewFeature", "admin@example.com") is True
    assert evaluator.get_variant("ABTestFeature", "user-42") in (
        "control",
        "variant-a",
        "variant-b",
    )


def test_merge_settings_does_not_mutate_inputs() -> None:
    """merge_settings は入力を変更しないこと。"""
    base = {"environment": "dev", "flags": [{"name": "A", "enabled": False}]}
    override = {"flags": [{"name": "a", "enabled": True}]}
    merged = merge_settings(base, override)
    assert merged["flags"] == [{"name": "A", "enabled": True}]
    assert base["flags"] == [{"name": "A", "enabled": False}]
    assert merged["environment"] == "dev"


def test_merge_settings_replaces_scalars() -> None:
    """スカラー値は override 側で置換されること。"""
    assert merge_settings({"environment": "dev"}, {"environment": "prod"}) == {
        "environment": "prod"
    }


def test_env_override_keeps_registered_name(tmp_path: Path) -> None:
    """表記違いの override でも登録名とバリアント割り当てが変わらないこと。"""
    base = write(
        tmp_path,
        "base.yaml",
        "feature_flags:\n"
        "  flags:\n"
        "    - name: ABTest\n"
        "      enabled: true\n"
        "      variants: [control, variant-a, variant-b]\n",
    )
    env = write(
        tmp_path, "prod.yaml", "feature_flags:\n  flags:\n    - name: abtest\n      enabled: true\n"
    )
    before = build_evaluator(base)
    after = build_evaluator(base, env)
    assert after.registry.all_names() == ("ABTest",)
    for i in range(300):
        user = f"user-{i}"
        assert after.get_variant("ABTest", user) == before.get_variant("ABTest", user)


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def info(self, event: str, **kw: object) -> None:
        self.events.append((event, kw))


def test_build_evaluator_configures_logging(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """build_evaluator が log セクションでロガーを構成し、読み込みを記録すること。"""
    import posthub_featureflag.loader as loader_module

    recorder = _RecordingLogger()
    received = []

    def fake_logger_from_settings(settings):  # type: ignore[no-untyped-def]
        received.append(settings)
        return recorder

    monkeypatch.setattr(loader_module, "logger_from_settings", fake_logger_from_settings)
    build_evaluator(write(tmp_path, "flags.yaml", BASE_YAML))
    assert received[0].level == "DEBUG"
    assert received[0].format == "text"
    assert recorder.events == [
        ("feature flags loaded", {"environment": "production", "flag_count": 2})
    ]


def test_build_evaluator_without_logging(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """configure_logging=False ではロガーを構成しないこと。"""
    import posthub_featureflag.loader as loader_module

    called = []
    monkeypatch.setattr(loader_module, "logger_from_settings", called.append)
    build_evaluator(write(tmp_path, "flags.yaml", BASE_YAML), configure_logging=False)
    assert called == []

"""posthub featureflag library."""

from .client import FeatureFlagEvaluatorProtocol
from .evaluator import FeatureFlagEvaluator
from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .guard import FeatureGate, GateDecision, GateOutcome, check_feature_gate
from .hashing import ANONYMOUS_USER, stable_hash
from .loader import build_evaluator, load_registry, load_settings, merge_settings
from .logger import logger_from_settings, new_logger
from .models import (
    EvaluationContext,
    EvaluationReason,
    EvaluationResult,
    FeatureFlagSettings,
    FlagDefinition,
    FlagStatus,
    LogSettings,
)
from .propagation import (
    X_FEATURE_FLAGS,
    FeatureFlagRequestScope,
    UserIdToken,
    get_current_user_id,
    inject_flags_header,
    reset_current_user_id,
    set_current_user_id,
)
from .registry import FlagRegistry

__all__ = [
    "ANONYMOUS_USER",
    "EvaluationContext",
    "EvaluationReason",
    "EvaluationResult",
    "FeatureFlagError",
    "FeatureFlagErrorCodes",
    "FeatureFlagEvaluator",
    "FeatureFlagEvaluatorProtocol",
    "FeatureFlagRequestScope",
    "FeatureFlagSettings",
    "FeatureGate",
    "FlagDefinition",
    "FlagRegistry",
    "FlagStatus",
    "GateDecision",
    "GateOutcome",
    "LogSettings",
    "UserIdToken",
    "X_FEATURE_FLAGS",
    "build_evaluator",
    "check_feature_gate",
    "get_current_user_id",
    "inject_flags_header",
    "load_registry",
    "load_settings",
    "logger_from_settings",
    "merge_settings",
    "new_logger",
    "reset_current_user_id",
    "set_current_user_id",
    "stable_hash",
]

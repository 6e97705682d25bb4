"""Tests for configuration loading and the shared data types."""

import pytest

from adaptive_ensemble import (
    Category,
    ConfigError,
    Contributor,
    EnsembleConfig,
    EnsembleDecision,
    Event,
    LearnOptions,
    PredictionSignal,
    PredictorConfig,
    PredictorStats,
    RoundContext,
    SignalValidationError,
    Strategy,
    as_history,
)


class TestEnsembleConfig:
    def test_defaults(self):
        cfg = EnsembleConfig()
        assert cfg.min_confidence == 65
        assert cfg.gap_threshold == 15
        assert cfg.bias_window == 20
        assert cfg.predictor.lookback == 200
        assert cfg.predictor.decay == 0.999

    def test_from_mapping_with_nested_predictor(self):
        cfg = EnsembleConfig.from_mapping(
            {"min_confidence": 60, "predictor": {"max_weight": 5.0}}
        )
        assert cfg.min_confidence == 60
        assert cfg.predictor.max_weight == 5.0
        assert cfg.predictor.min_weight == 0.2

    def test_unknown_keys_ignored(self):
        cfg = EnsembleConfig.from_mapping({"min_confidence": 70, "colour": "blue"})
        assert cfg.min_confidence == 70

    def test_unknown_keys_rejected_when_strict(self):
        with pytest.raises(ConfigError):
            EnsembleConfig.from_mapping({"colour": "blue"}, strict=True)
        with pytest.raises(ConfigError):
            EnsembleConfig.from_mapping({"predictor": {"speed": 1}}, strict=True)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"min_confidence": 120},
            {"bias_low": 0.7, "bias_high": 0.6},
            {"bias_window": 0},
            {"min_share_rate": 1.5},
            {"enhancement_cap": 0.9},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            EnsembleConfig(**overrides).validate()

    def test_invalid_predictor_values(self):
        with pytest.raises(ConfigError):
            PredictorConfig(min_weight=2.0, max_weight=1.0).validate()
        with pytest.raises(ConfigError):
            PredictorConfig(ema_alpha=0).validate()
        with pytest.raises(ConfigError):
            PredictorConfig(lookback=0).validate()

    def test_from_env(self):
        cfg = EnsembleConfig.from_env(
            environ={
                "ENSEMBLE_MIN_CONFIDENCE": "70",
                "ENSEMBLE_BIAS_WINDOW": "30",
                "ENSEMBLE_PREDICTOR_DECAY": "0.99",
                "UNRELATED": "1",
            }
        )
        assert cfg.min_confidence == 70.0
        assert cfg.bias_window == 30
        assert isinstance(cfg.bias_window, int)
        assert cfg.predictor.decay == 0.99

    def test_from_env_rejects_non_numbers(self):
        with pytest.raises(ConfigError):
            EnsembleConfig.from_env(environ={"ENSEMBLE_GAP_THRESHOLD": "wide"})

    def test_from_env_custom_prefix(self):
        cfg = EnsembleConfig.from_env(prefix="APP_", environ={"APP_MIN_CONFIDENCE": "50"})
        assert cfg.min_confidence == 50.0


class TestEvent:
    def test_from_magnitude(self):
        assert Event.from_magnitude(5).category is Category.BIG
        assert Event.from_magnitude(4).category is Category.SMALL

    def test_category_strings_normalized(self):
        assert Event("small").category is Category.SMALL

    @pytest.mark.parametrize("kwargs", [{"category": "MEDIUM"}, {"category": "BIG", "magnitude": 12}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            Event(**kwargs)

    def test_from_feed_record(self):
        event = Event.from_mapping({"number": "3", "createTime": 1700000000})
        assert event.category is Category.SMALL
        assert event.magnitude == 3
        assert event.timestamp == 1700000000.0

    def test_as_history_drops_malformed(self):
        events = as_history([Event("BIG"), {"resultType": "SMALL"}, {"number": 15}, "BIG", None])
        assert [e.category for e in events] == [Category.BIG, Category.SMALL]
        assert as_history(None) == ()
        assert as_history(7) == ()


class TestPredictionSignal:
    def test_confidence_clamped(self):
        assert PredictionSignal("BIG", 140).confidence == 100
        assert PredictionSignal("BIG", -3).confidence == 0

    def test_tags_deduplicated_in_order(self):
        signal = PredictionSignal("BIG", 70, ("b", "a", "b", ""))
        assert signal.pattern_tags == ("b", "a")

    @pytest.mark.parametrize(
        "raw",
        [
            {"category": "UNKNOWN", "confidence": 70},
            {"category": "BIG", "confidence": "high"},
            {"category": "BIG", "confidence": True},
            {"category": "BIG", "confidence": 70, "patterns": 5},
            [1, 2],
        ],
    )
    def test_coerce_rejects(self, raw):
        with pytest.raises(SignalValidationError):
            PredictionSignal.coerce(raw)

    def test_to_dict(self):
        data = PredictionSignal("SMALL", 75, ("x",), 19).to_dict()
        assert data == {
            "category": "SMALL",
            "confidence": 75,
            "pattern_tags": ["x"],
            "source_logic_id": 19,
        }


class TestRecords:
    def test_contributor_from_mapping_defaults(self):
        c = Contributor.from_mapping({"id": "KBT", "confidence": None})
        assert c.predictor_id == "KBT"
        assert c.weight == 1.0
        assert c.confidence == 50.0
        assert c.category is Category.UNKNOWN

    def test_decision_to_dict(self):
        decision = EnsembleDecision(
            Category.BIG,
            70,
            Strategy.TOP_MODEL,
            ("x",),
            (Contributor("A", "A", 1.0, Category.BIG, 70),),
            chosen_predictor_id="A",
            logic="A:1",
        )
        data = decision.to_dict()
        assert data["strategy"] == "TOP_MODEL"
        assert data["contributors"][0]["predictor_id"] == "A"
        assert not decision.is_sentinel

    def test_round_context_ignores_unknown_keys(self):
        ctx = RoundContext.from_mapping(
            {"consecutive_losses": -2, "last_known_category": "big", "period": "123"}
        )
        assert ctx.consecutive_losses == 0
        assert ctx.last_known_category is Category.BIG
        assert RoundContext.from_mapping(None) == RoundContext()

    def test_learn_options_ignore_unknown_keys(self):
        opts = LearnOptions.from_mapping({"learning_rate_multiplier": 2.0, "verbose": True})
        assert opts.rate == 2.0

    def test_stats_from_legacy_row(self):
        stats = PredictorStats.from_mapping(
            {"id": "KBT", "name": None, "weight": "1.5", "wins": 3, "emaAccuracy": 0.61}
        )
        assert stats.name == "KBT"
        assert stats.weight == 1.5
        assert stats.losses == 0
        assert stats.ema_accuracy == 0.61

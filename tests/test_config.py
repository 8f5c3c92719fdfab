from __future__ import annotations

import json

import pytest

from config import (
    HighlightConfig,
    JourneyConfig,
    OrbitConfig,
    TourConfig,
    load_tour_config,
    with_overrides,
)


def test_defaults_follow_tour_timings():
    cfg = TourConfig()
    assert cfg.timings.initial_delay == 0.8
    assert cfg.timings.flight == 8.0
    assert cfg.timings.landmark_pause == 2.5
    assert cfg.reveal.approach_duration + cfg.reveal.settle_duration == pytest.approx(6.0)
    assert cfg.orbit.duration == 10.0


def test_with_overrides_names_unknown_options():
    with pytest.raises(ValueError, match="bogus"):
        with_overrides(HighlightConfig(), zoom=15, bogus=1)


def test_with_overrides_validates():
    assert with_overrides(HighlightConfig(), zoom=15).zoom == 15
    with pytest.raises(ValueError, match="duration"):
        with_overrides(HighlightConfig(), duration=-1)
    with pytest.raises(ValueError, match="offset_side"):
        with_overrides(JourneyConfig(), offset_side="up")


def test_from_dict_merges_sections_over_defaults():
    cfg = TourConfig.from_dict(
        {
            "overview_zoom": 12,
            "timings": {"flight": 4.0},
            "orbit": {"label_thresholds": [45, 90]},
        }
    )
    assert cfg.overview_zoom == 12
    assert cfg.timings.flight == 4.0
    assert cfg.timings.outro == 6.0
    assert cfg.orbit.label_thresholds == (45, 90)
    assert cfg.orbit == OrbitConfig(label_thresholds=(45, 90))


def test_from_dict_rejects_bad_sections():
    with pytest.raises(ValueError, match="must be an object"):
        TourConfig.from_dict({"timings": 3})
    with pytest.raises(ValueError, match="Unknown"):
        TourConfig.from_dict({"reveal": {"speed": 3}})


def test_load_tour_config(tmp_path):
    path = tmp_path / "tour.json"
    path.write_text(json.dumps({"highlight": {"orbit_angle": 90}}), encoding="utf-8")
    assert load_tour_config(path).highlight.orbit_angle == 90

    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid tour config JSON"):
        load_tour_config(path)

    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError, match="JSON object"):
        load_tour_config(path)


def test_round_trips_through_dict():
    cfg = TourConfig.from_dict({"journey": {"max_banking": 5}})
    assert TourConfig.from_dict(cfg.to_dict()) == cfg

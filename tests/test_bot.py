from __future__ import annotations

import asyncio
import json

import pytest

from bot import load_tour_script, main, run_script
from config import TourConfig, TourOptions
from models import CameraState, ShotType
from surface import RecordingSurface

QUICK = {
    "timings": {
        "initial_delay": 0.01,
        "establishing": 0.05,
        "intro": 0.05,
        "flight": 0.05,
        "landmark_pause": 0.02,
        "outro": 0.05,
    },
    "establishing": {"setup_delay": 0},
    "journey": {"duration": 0.05},
    "orbit": {"duration": 0.05},
}


def _write(tmp_path, payload):
    path = tmp_path / "tour.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_tour_script(tmp_path):
    path = _write(
        tmp_path,
        {
            "title": "Harbour",
            "origin": [151.2153, -33.8568],
            "landmarks": [{"lng": 151.2108, "lat": -33.8523, "title": "Bridge"}, [151.2140, -33.8600]],
            "config": QUICK,
        },
    )
    script = load_tour_script(path)
    assert script["title"] == "Harbour"
    assert script["origin"] == (151.2153, -33.8568)
    assert [lm.title for lm in script["landmarks"]] == ["Bridge", ""]
    assert script["config"].timings.flight == 0.05


@pytest.mark.parametrize(
    "payload, message",
    [
        ([], "JSON object"),
        ({"landmarks": []}, "origin"),
        ({"origin": [0, 0], "landmarks": {}}, "list"),
        ({"origin": [0, 0], "config": {"warp": 9}}, "Unknown"),
    ],
)
def test_load_tour_script_rejects_bad_scripts(tmp_path, payload, message):
    with pytest.raises(ValueError, match=message):
        load_tour_script(_write(tmp_path, payload))


def test_run_script_adds_journey_and_orbit(tmp_path):
    origin = [151.2153, -33.8568]
    path = _write(
        tmp_path,
        {
            "origin": origin,
            "landmarks": [[151.2108, -33.8523]],
            "route": [origin, [151.2130, -33.8550], [151.2108, -33.8523]],
            "orbit": True,
            "config": QUICK,
        },
    )
    script = load_tour_script(path)
    surface = RecordingSurface(fps=200, initial=CameraState(center=script["origin"]))

    results = asyncio.run(run_script(script, surface, TourOptions(skip_establishing=True)))

    assert [r.shot for r in results] == [
        ShotType.REVEAL,
        ShotType.LANDMARK_HIGHLIGHT,
        ShotType.CUSTOM,
        ShotType.JOURNEY,
        ShotType.CONTEXTUAL_ORBIT,
    ]
    assert not any(r.cancelled for r in results)
    assert surface.keyframes


def test_load_tour_script_keeps_malformed_landmarks_as_invalid(tmp_path):
    path = _write(
        tmp_path,
        {"origin": [0, 0], "landmarks": [None, [1.0], {"coordinates": [None, None]}, [2.0, 3.0]]},
    )
    script = load_tour_script(path)
    assert [lm.is_valid for lm in script["landmarks"]] == [False, False, False, True]


def test_dry_run_uses_the_virtual_clock(tmp_path, monkeypatch):
    path = _write(tmp_path, {"title": "Quay", "origin": [151.2153, -33.8568], "landmarks": [[151.2108, -33.8523]]})
    out = tmp_path / "out"
    monkeypatch.setattr("sys.argv", ["bot.py", "--tour", str(path), "--dry-run", "--output-dir", str(out)])

    main()

    (run_dir,) = out.iterdir()
    keyframes = json.loads((run_dir / "keyframes.json").read_text(encoding="utf-8"))
    timings = TourConfig().timings
    assert keyframes[-1]["t"] >= timings.initial_delay + 2 * timings.landmark_pause
    assert (run_dir / "tour.kml").exists()
    assert (run_dir / "shots.csv").read_text(encoding="utf-8").startswith("index,shot")

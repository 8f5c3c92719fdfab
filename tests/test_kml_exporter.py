from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from kml_exporter import export_kml, zoom_to_altitude_m
from models import CameraKeyframe, CameraState

GX = "{http://www.google.com/kml/ext/2.2}"
KML = "{http://www.opengis.net/kml/2.2}"


def _keyframes():
    return [
        CameraKeyframe(t=0.0, state=CameraState(center=(10.0, 50.0), zoom=14, pitch=30, bearing=350, roll=0)),
        CameraKeyframe(t=1.0, state=CameraState(center=(10.01, 50.0), zoom=15, pitch=40, bearing=10, roll=2)),
    ]


def test_altitude_halves_per_zoom_level():
    assert zoom_to_altitude_m(15, 0.0) == pytest.approx(zoom_to_altitude_m(14, 0.0) / 2)
    assert zoom_to_altitude_m(14, 60.0) == pytest.approx(zoom_to_altitude_m(14, 0.0) / 2)


def test_export_writes_a_resampled_tour(tmp_path):
    path = tmp_path / "nested" / "tour.kml"

    written = export_kml(_keyframes(), path, title="Test tour", fps=2, target=(10.0, 50.0))

    root = ET.parse(path).getroot()
    flights = root.findall(f".//{GX}FlyTo")
    assert written == len(flights) == 3
    assert root.find(f".//{KML}Document/{KML}name").text == "Test tour"
    assert root.find(f".//{KML}Placemark") is not None

    durations = [float(f.find(f"{GX}duration").text) for f in flights]
    assert durations == [0.0, 0.5, 0.5]

    middle = flights[1].find(f"{KML}Camera")
    # Heading crosses north instead of swinging through south.
    assert float(middle.find(f"{KML}heading").text) % 360 == pytest.approx(0.0, abs=1e-3)
    assert float(middle.find(f"{KML}roll").text) == pytest.approx(1.0)
    assert float(middle.find(f"{KML}longitude").text) == pytest.approx(10.005)


def test_single_keyframe_exports_one_flight(tmp_path):
    path = tmp_path / "one.kml"
    assert export_kml(_keyframes()[:1], path) == 1
    assert ET.parse(path).getroot().find(f".//{KML}Placemark") is None

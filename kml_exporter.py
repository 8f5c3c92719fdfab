from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from pathlib import Path
from xml.dom import minidom

from easing import lerp, lerp_bearing
from models import CameraKeyframe, Point

# Web-mercator ground resolution at zoom 0 on the equator, meters per pixel.
_MERCATOR_M_PER_PX = 156_543.03392
# MapLibre's default vertical field of view is 2 * atan(0.75), ~36.87 deg.
_FOV_ALTITUDE_FACTOR = 1.0 / (2 * 0.75)


def zoom_to_altitude_m(zoom: float, lat: float, viewport_height: int = 720) -> float:
    """Camera height that shows the same ground span as ``zoom`` at ``lat``."""
    meters_per_px = _MERCATOR_M_PER_PX * math.cos(math.radians(lat)) / (2 ** zoom)
    return meters_per_px * viewport_height * _FOV_ALTITUDE_FACTOR


def _interpolate_for_tour(
    keyframes: list[CameraKeyframe],
    fps: int,
    viewport_height: int,
) -> list[dict]:
    def point(state, duration: float) -> dict:
        return {
            "lng": state["lng"],
            "lat": state["lat"],
            "alt": zoom_to_altitude_m(state["zoom"], state["lat"], viewport_height),
            "heading": state["bearing"],
            "tilt": state["pitch"],
            "roll": state["roll"],
            "duration": duration,
        }

    def flat(k: CameraKeyframe) -> dict:
        s = k.state
        return {"lng": s.center[0], "lat": s.center[1], "zoom": s.zoom,
                "bearing": s.bearing, "pitch": s.pitch, "roll": s.roll}

    if len(keyframes) < 2:
        return [point(flat(k), 0.0) for k in keyframes]

    points: list[dict] = []
    interval = 1.0 / max(fps, 1)

    ki = 0
    t = keyframes[0].t
    end_t = keyframes[-1].t

    while t <= end_t + 1e-6:
        while ki < len(keyframes) - 2 and keyframes[ki + 1].t < t:
            ki += 1

        a = flat(keyframes[ki])
        b = flat(keyframes[ki + 1])
        span = max(keyframes[ki + 1].t - keyframes[ki].t, 1e-8)
        p = max(0.0, min(1.0, (t - keyframes[ki].t) / span))

        points.append(point({
            "lng": lerp(a["lng"], b["lng"], p),
            "lat": lerp(a["lat"], b["lat"], p),
            "zoom": lerp(a["zoom"], b["zoom"], p),
            "bearing": lerp_bearing(a["bearing"], b["bearing"], p),
            "pitch": lerp(a["pitch"], b["pitch"], p),
            "roll": lerp(a["roll"], b["roll"], p),
        }, interval))
        t += interval

    if points:
        points[0]["duration"] = 0.0

    return points


def export_kml(
    keyframes: list[CameraKeyframe],
    output_path: Path,
    *,
    title: str = "Cinematic tour",
    fps: int = 2,
    target: Point | None = None,
    viewport_height: int = 720,
) -> int:
    """Write recorded camera keyframes as a Google Earth KML tour.

    Keyframes are resampled at ``fps`` (lower means a smaller, smoother
    tour). Map zoom becomes camera altitude for the frame's latitude.
    Returns the number of FlyTo entries written.
    """
    GX = "http://www.google.com/kml/ext/2.2"
    KML_NS = "http://www.opengis.net/kml/2.2"

    ET.register_namespace("", KML_NS)
    ET.register_namespace("gx", GX)

    kml = ET.Element(f"{{{KML_NS}}}kml")

    doc = ET.SubElement(kml, "Document")
    ET.SubElement(doc, "name").text = title

    if target is not None:
        pm = ET.SubElement(doc, "Placemark")
        ET.SubElement(pm, "name").text = "Target"
        pt = ET.SubElement(pm, "Point")
        ET.SubElement(pt, "coordinates").text = f"{target[0]},{target[1]},0"

    tour = ET.SubElement(doc, f"{{{GX}}}Tour")
    ET.SubElement(tour, "name").text = title
    playlist = ET.SubElement(tour, f"{{{GX}}}Playlist")

    points = _interpolate_for_tour(keyframes, fps, viewport_height)

    for pt in points:
        fly_to = ET.SubElement(playlist, f"{{{GX}}}FlyTo")
        ET.SubElement(fly_to, f"{{{GX}}}duration").text = f"{pt['duration']:.4f}"
        ET.SubElement(fly_to, f"{{{GX}}}flyToMode").text = "smooth"

        camera = ET.SubElement(fly_to, "Camera")
        ET.SubElement(camera, "longitude").text = f"{pt['lng']:.10f}"
        ET.SubElement(camera, "latitude").text = f"{pt['lat']:.10f}"
        ET.SubElement(camera, "altitude").text = f"{pt['alt']:.2f}"
        ET.SubElement(camera, "heading").text = f"{pt['heading']:.4f}"
        ET.SubElement(camera, "tilt").text = f"{pt['tilt']:.4f}"
        ET.SubElement(camera, "roll").text = f"{pt['roll']:.4f}"
        ET.SubElement(camera, "altitudeMode").text = "absolute"

    raw_xml = ET.tostring(kml, encoding="unicode", xml_declaration=False)
    pretty = minidom.parseString(raw_xml).toprettyxml(indent="  ", encoding="utf-8")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(pretty)
    return len(points)

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
import os
from datetime import datetime
from pathlib import Path

from analysis import build_tour_analysis, speed_uniformity
from config import TourConfig, TourOptions
from kml_exporter import export_kml
from models import CameraState, Landmark, ShotResult, is_valid_point
from surface import RecordingSurface
from tour import CinematicTour


RESOLUTION_PRESETS = {
    "270p": (480, 270),
    "480p": (854, 480),
    "720p": (1280, 720),
    "1080p": (1920, 1080),
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a scripted cinematic camera tour and export the recorded camera path."
    )
    parser.add_argument("--tour", required=True, help="Tour script JSON (origin, landmarks, optional route/config)")
    parser.add_argument("--skip-establishing", action="store_true", help="Start with the reveal instead of a high establishing shot")
    parser.add_argument("--fps", type=float, default=30.0, help="Frame rate of the headless surface (dry-run)")
    parser.add_argument("--kml-fps", type=int, default=2, help="Sample rate of the exported KML tour")
    parser.add_argument(
        "--resolution",
        choices=list(RESOLUTION_PRESETS),
        default="720p",
        help="Browser viewport size",
    )
    parser.add_argument("--output-dir", default="output", help="Output root directory")
    parser.add_argument("--dry-run", action="store_true", help="Record the tour headless, without a browser")
    parser.add_argument("--realtime", action="store_true", help="Pace a dry run by the wall clock instead of the virtual frame clock")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    parser.add_argument("--snapshot", action="store_true", help="Save a PNG still after the tour (browser mode)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("PREVIZ_LOG_LEVEL", "WARNING"),
        help="Logging level (uses PREVIZ_LOG_LEVEL env var if not provided)",
    )
    return parser.parse_args()


def _safe_write_json(path: Path, payload: dict | list) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def load_tour_script(path: Path) -> dict:
    """Read a tour script. Raises ValueError on a malformed script."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid tour JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Tour script must be a JSON object: {path}")
    if not is_valid_point(data.get("origin")):
        raise ValueError("Tour script needs an 'origin' of [lng, lat]")

    landmarks = data.get("landmarks")
    if landmarks is None:
        landmarks = []
    if not isinstance(landmarks, list):
        raise ValueError("'landmarks' must be a list")

    return {
        "title": str(data.get("title", "Cinematic tour")),
        "origin": (float(data["origin"][0]), float(data["origin"][1])),
        "landmarks": [Landmark.from_value(x) for x in landmarks],
        "route": data.get("route") or [],
        "orbit": bool(data.get("orbit", False)),
        "config": TourConfig.from_dict(data.get("config") or {}),
    }


async def run_script(script: dict, surface, options: TourOptions) -> list[ShotResult]:
    tour = CinematicTour(script["config"])
    try:
        await tour.start_tour(surface, script["origin"], script["landmarks"], options)
        results = list(tour.results)
        if script["route"]:
            print(f"[INFO] Journey along {len(script['route'])} route point(s)")
            results.append(await tour.journey(surface, script["route"]))
        if script["orbit"]:
            print("[INFO] Contextual orbit around origin")
            results.append(
                await tour.orbit(
                    surface,
                    script["origin"],
                    on_label_reveal=lambda i: print(f"  - label {i + 1} revealed"),
                )
            )
        return results
    finally:
        tour.destroy()


async def _run_in_browser(script: dict, args, options: TourOptions, snapshot_path: Path | None) -> tuple[RecordingSurface, list[ShotResult]]:
    from browser_surface import BrowserOptions, PlaywrightMapSurface

    width, height = RESOLUTION_PRESETS[args.resolution]
    browser_options = BrowserOptions(width=width, height=height, headless=not args.headful)
    initial = CameraState(center=script["origin"], zoom=script["config"].overview_zoom)
    async with PlaywrightMapSurface(browser_options, initial) as page_surface:
        recorder = RecordingSurface(page_surface)
        results = await run_script(script, recorder, options)
        if snapshot_path is not None:
            await page_surface.screenshot(snapshot_path)
    return recorder, results


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    tour_path = Path(args.tour)
    print(f"[INFO] Loading tour script: {tour_path}")
    script = load_tour_script(tour_path)
    options = TourOptions(skip_establishing=args.skip_establishing)

    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(args.output_dir) / f"run_{run_id}"
    run_dir.mkdir(parents=True, exist_ok=True)

    steps = CinematicTour.count_steps(script["landmarks"], options)
    print(f"[INFO] run_dir: {run_dir}")
    print(f"[INFO] landmarks: {len(script['landmarks'])} / steps: {steps} / mode: {'dry-run' if args.dry_run else 'browser'}")

    if args.dry_run:
        surface = RecordingSurface(
            realtime=args.realtime,
            fps=args.fps,
            initial=CameraState(center=script["origin"], zoom=script["config"].overview_zoom),
        )
        results = asyncio.run(run_script(script, surface, options))
    else:
        snapshot_path = run_dir / "snapshot.png" if args.snapshot else None
        surface, results = asyncio.run(_run_in_browser(script, args, options, snapshot_path))

    keyframes = surface.keyframes
    _safe_write_json(run_dir / "keyframes.json", [k.to_dict() for k in keyframes])

    kml_path = run_dir / "tour.kml"
    flights = export_kml(
        keyframes,
        kml_path,
        title=script["title"],
        fps=args.kml_fps,
        target=script["origin"],
        viewport_height=RESOLUTION_PRESETS[args.resolution][1],
    )

    analysis = build_tour_analysis(keyframes, results)
    analysis["speed_uniformity"] = speed_uniformity(keyframes)
    summary_json = {
        "run_id": run_id,
        "input": {
            "tour": str(tour_path),
            "title": script["title"],
            "origin": list(script["origin"]),
            "landmarks": len(script["landmarks"]),
            "skip_establishing": args.skip_establishing,
            "dry_run": args.dry_run,
        },
        "config": script["config"].to_dict(),
        "analysis": analysis,
    }
    _safe_write_json(run_dir / "summary.json", summary_json)

    csv_path = run_dir / "shots.csv"
    rows = [
        {
            "index": i,
            "shot": r.shot.value,
            "cancelled": r.cancelled,
            "skipped": r.skipped,
            "distance_m": "" if r.distance_m is None else round(r.distance_m, 2),
            "phases": "+".join(r.phases),
        }
        for i, r in enumerate(results, start=1)
    ]
    with csv_path.open("w", newline="", encoding="utf-8") as fp:
        writer = csv.DictWriter(fp, fieldnames=["index", "shot", "cancelled", "skipped", "distance_m", "phases"])
        writer.writeheader()
        writer.writerows(rows)

    motion = analysis["motion"]
    print("[DONE] Tour complete")
    print(f"  - shots: {len(results)} / keyframes: {len(keyframes)} / distance: {motion['distance_m']:.0f} m")
    print(f"  - keyframes: {run_dir / 'keyframes.json'}")
    print(f"  - kml: {kml_path} ({flights} flyTo)")
    print(f"  - summary: {run_dir / 'summary.json'}")
    print(f"  - shots_csv: {csv_path}")
    if not args.dry_run and args.snapshot:
        print(f"  - snapshot: {run_dir / 'snapshot.png'}")


if __name__ == "__main__":
    main()

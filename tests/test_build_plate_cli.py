from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import matplotlib.image as mpimg
import numpy as np
import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent
SCRIPT = REPO_ROOT / "scripts" / "build_plate.py"


def _run(*args: str) -> subprocess.CompletedProcess:
    cmd = [sys.executable, str(SCRIPT), *args]
    return subprocess.run(cmd, capture_output=True, text=True)


def test_plate_with_hole_writes_summary(tmp_path: Path):
    summary = tmp_path / "summary.json"
    proc = _run(
        "--shape", "rectangle", "--width", "80", "--height", "50",
        "--hole", "0,0,5", "--summary", str(summary),
    )
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(summary.read_text(encoding="utf-8"))
    assert payload["mode"] == "plate"
    assert payload["triangles"] > 0
    assert payload["watertight"] is True
    assert 0 < payload["volume_mm3"] < 80 * 50 * 2
    assert payload["bounds_min"][2] == -1.0


def test_stencil_with_default_font():
    proc = _run("--mode", "stencil", "--shape", "rectangle", "--text", "HI", "--text-size", "14")
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert payload["mode"] == "stencil"
    assert payload["triangles"] > 12


def test_qr_mode_reads_matrix(tmp_path: Path):
    matrix = tmp_path / "code.txt"
    np.savetxt(matrix, np.eye(5, dtype=int), fmt="%d")
    proc = _run("--mode", "qr", "--qr-matrix", str(matrix), "--qr-size", "25")
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert [g[2] for g in payload["groups"]] == [0, 1]


def test_image_relief_from_png(tmp_path: Path):
    image = np.ones((8, 8, 3), dtype=np.float32)
    image[2:6, 2:6] = 0.0
    path = tmp_path / "logo.png"
    mpimg.imsave(path, image)
    proc = _run(
        "--mode", "image-relief", "--image", str(path), "--grid", "8",
        "--smoothing", "0", "--image-size", "40", "--size", "50",
    )
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert [g[2] for g in payload["groups"]] == [0, 1]
    assert payload["bounds_max"][2] == 2.0 + 5.0


def test_tray_array_and_force_csg():
    proc = _run(
        "--shape", "tray", "--array", "rectangular", "--array-count", "2", "1",
        "--force-csg",
    )
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert payload["triangles"] > 0


def test_qr_mode_requires_matrix():
    proc = _run("--mode", "qr")
    assert proc.returncode != 0
    assert "--qr-matrix is required" in proc.stderr


def test_circular_array_uses_count_and_radius():
    proc = _run(
        "--shape", "square", "--size", "10", "--array", "circular",
        "--array-circular-count", "4", "--array-radius", "30",
    )
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    single = json.loads(_run("--shape", "square", "--size", "10").stdout)
    assert payload["triangles"] == 4 * single["triangles"]
    assert payload["bounds_min"][:2] == pytest.approx([-35.0, -35.0])
    assert payload["bounds_max"][:2] == pytest.approx([35.0, 35.0])

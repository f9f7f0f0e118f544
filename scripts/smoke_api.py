"""Manual smoke check against a running web_app (python web_app.py)."""
import json
import sys
import tempfile
from pathlib import Path

import cv2
import numpy as np
import requests

BASE = "http://127.0.0.1:5000"


def make_test_image(tmpdir: Path) -> Path:
    img = np.full((240, 240, 3), 255, dtype=np.uint8)
    cv2.circle(img, (120, 120), 60, (0, 0, 0), 3)
    cv2.circle(img, (100, 110), 8, (0, 0, 0), -1)
    cv2.circle(img, (140, 110), 8, (0, 0, 0), -1)
    cv2.ellipse(img, (120, 140), (25, 12), 0, 0, 180, (0, 0, 0), 2)
    path = tmpdir / "test.png"
    cv2.imwrite(str(path), img)
    return path


def post_image(path: str, img: Path, data: dict = None):
    with open(img, "rb") as f:
        r = requests.post(BASE + path, files={"image": (img.name, f, "image/png")}, data=data or {})
    return r


def main():
    results = {"ok": True, "checks": []}

    r = requests.get(BASE + "/api/ping")
    results["checks"].append({"name": "GET /api/ping", "status": r.status_code})
    if r.status_code != 200:
        results["ok"] = False

    with tempfile.TemporaryDirectory() as td:
        img = make_test_image(Path(td))
        r = post_image("/api/validate_image", img)
        results["checks"].append({"name": "POST /api/validate_image", "status": r.status_code})

        r = post_image("/api/anonymize", img, {"type": "blur", "blur_radius": "20"})
        results["checks"].append({"name": "POST /api/anonymize (expect 200 or 400)", "status": r.status_code})

        r = post_image("/api/sessions", img, {"type": "pixelate", "pixel_size": "12"})
        results["checks"].append({"name": "POST /api/sessions", "status": r.status_code})
        session_id = r.json().get("id", "") if r.status_code == 200 else ""
        if session_id:
            for mode in ("blur", "pixelate", "box"):
                rr = requests.post(f"{BASE}/api/sessions/{session_id}/render", data={"type": mode})
                results["checks"].append({"name": f"POST render {mode}", "status": rr.status_code})
                if rr.status_code != 200 or rr.headers.get("content-type") != "image/png":
                    results["ok"] = False
            rr = requests.delete(f"{BASE}/api/sessions/{session_id}")
            results["checks"].append({"name": "DELETE session", "status": rr.status_code})
        else:
            results["ok"] = False

    print(json.dumps(results, indent=2))
    return 0 if results["ok"] else 1


if __name__ == "__main__":
    sys.exit(main())

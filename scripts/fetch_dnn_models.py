import sys
import urllib.request
from pathlib import Path

from anonymizer.detectors import CAFFE_WEIGHTS_NAME

FILES = {
    "deploy.prototxt": "https://raw.githubusercontent.com/opencv/opencv/master/samples/dnn/face_detector/deploy.prototxt",
    CAFFE_WEIGHTS_NAME: "https://github.com/opencv/opencv_3rdparty/raw/dnn_samples_face_detector_20170830/res10_300x300_ssd_iter_140000.caffemodel",
}


def main(target: str = "") -> None:
    base = Path(target) if target else Path(__file__).resolve().parent.parent / "anonymizer" / "models"
    base.mkdir(parents=True, exist_ok=True)
    for name, url in FILES.items():
        out = base / name
        if out.exists() and out.stat().st_size > 0:
            print(f"exists {out}")
            continue
        print(f"downloading {url} -> {out}")
        urllib.request.urlretrieve(url, str(out))
    print("done")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else "")

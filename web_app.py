import os
import threading
import uuid
from io import BytesIO

from flask import Flask, request, send_file, jsonify
from flask_cors import CORS

from anonymizer import AnonymizerConfig, AnonymizerSession, decode_image
from anonymizer.errors import DetectionFailure, InitializationFailure, InvalidInput, SessionBusy
from anonymizer.raster import OpenCVBackend, probe_capabilities

IMAGE_MIMETYPES = ("image/jpeg", "image/png", "image/webp", "image/bmp", "image/tiff")
IMAGE_EXTS = (".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
SESSIONS_MAX = 32


def _read_upload():
    """Decode the multipart `image` field; raises InvalidInput with a client-facing message."""
    if "image" not in request.files:
        raise InvalidInput("no image")
    file = request.files["image"]
    ext = os.path.splitext(file.filename or "")[1].lower()
    if file.mimetype not in IMAGE_MIMETYPES:
        raise InvalidInput("unsupported image type")
    if ext not in IMAGE_EXTS:
        raise InvalidInput("unsupported image extension")
    data = file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidInput("image too large")
    return decode_image(data)


def _int_field(name, default):
    try:
        return int(request.form.get(name, default))
    except (TypeError, ValueError):
        return default


def _png_response(session, name="anonymized.png"):
    bio = BytesIO(session.export(".png"))
    bio.seek(0)
    return send_file(bio, mimetype="image/png", download_name=name)


def _apply_render_fields(session):
    session.update(
        mode=request.form.get("type") or None,
        blur_radius=_int_field("blur_radius", None),
        pixel_block_size=_int_field("pixel_size", None),
    )


def create_app(session_factory=None, config=None):
    """Build the Flask app; `session_factory` returns a fresh AnonymizerSession per upload."""
    config = config or AnonymizerConfig.from_env()
    if session_factory is None:
        backend = OpenCVBackend()
        capabilities = probe_capabilities(backend)

        def session_factory():
            return AnonymizerSession(config=config, backend=backend, capabilities=capabilities)

    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    sessions = {}
    sessions_lock = threading.Lock()

    @app.errorhandler(InvalidInput)
    def _invalid(ex):
        return jsonify({"ok": False, "error": str(ex)}), 400

    @app.errorhandler(SessionBusy)
    def _busy(ex):
        return jsonify({"ok": False, "error": str(ex)}), 409

    @app.errorhandler(InitializationFailure)
    def _init_failed(ex):
        return jsonify({"ok": False, "error": f"detector unavailable: {ex}"}), 503

    @app.errorhandler(DetectionFailure)
    def _detect_failed(ex):
        app.logger.error("Detection failed: %s", ex)
        return jsonify({"ok": False, "error": "detection failed"}), 500

    @app.after_request
    def add_no_cache(resp):
        resp.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
        resp.headers.setdefault("Pragma", "no-cache")
        resp.headers.setdefault("Expires", "0")
        return resp

    def _get_session(session_id):
        with sessions_lock:
            return sessions.get(session_id)

    @app.get("/api/ping")
    def api_ping():
        return jsonify({"ok": True})

    @app.post("/api/anonymize")
    def anonymize():
        img = _read_upload()
        session = session_factory()
        _apply_render_fields(session)
        boxes = session.process(img)
        if not boxes:
            return jsonify({"ok": False, "error": "no faces found"}), 400
        return _png_response(session)

    @app.post("/api/validate_image")
    def validate_image():
        img = _read_upload()
        session = session_factory()
        boxes = session.process(img)
        return jsonify({"ok": True, "faces": len(boxes), "boxes": [b.to_dict() for b in boxes]})

    @app.post("/api/sessions")
    def create_session():
        img = _read_upload()
        session = session_factory()
        _apply_render_fields(session)
        boxes = session.process(img)
        session_id = uuid.uuid4().hex
        with sessions_lock:
            sessions[session_id] = session
            if len(sessions) > SESSIONS_MAX:
                oldest = next(iter(sessions.keys()))
                sessions.pop(oldest, None)
        h, w = session.image.shape[:2]
        return jsonify({
            "ok": True,
            "id": session_id,
            "width": int(w),
            "height": int(h),
            "faces": len(boxes),
            "boxes": [b.to_dict() for b in boxes],
        })

    @app.get("/api/sessions/<session_id>/boxes")
    def session_boxes(session_id):
        s = _get_session(session_id)
        if s is None:
            return jsonify({"ok": False, "error": "invalid id"}), 404
        return jsonify({
            "ok": True,
            "state": s.state.value,
            "mode": s.mode.value,
            "blur_radius": s.params.blur_radius,
            "pixel_size": s.params.pixel_block_size,
            "boxes": [b.to_dict() for b in s.boxes],
        })

    @app.post("/api/sessions/<session_id>/render")
    def session_render(session_id):
        s = _get_session(session_id)
        if s is None:
            return jsonify({"ok": False, "error": "invalid id"}), 404
        _apply_render_fields(s)
        return _png_response(s)

    @app.delete("/api/sessions/<session_id>")
    def session_delete(session_id):
        with sessions_lock:
            s = sessions.pop(session_id, None)
        if s is None:
            return jsonify({"ok": False, "error": "invalid id"}), 404
        return jsonify({"ok": True})

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "5000"))
    try:
        print(app.url_map)
    except Exception:
        pass
    app.run(host="127.0.0.1", port=port, debug=False)

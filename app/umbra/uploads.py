from __future__ import annotations

import re
import time

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from app.umbra.audit import record_event
from app.umbra.constants import EXTENSION_MIME_TYPES, FILE_MIME_TYPES, IMAGE_MIME_TYPES, UPLOAD_FOLDERS
from app.umbra.db import db_session
from app.umbra.rbac import require_admin
from app.umbra.storage import StorageError, storage_from_config
from app.umbra.utils import current_user, json_error

bp = Blueprint("uploads", __name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_MAX_STEM = 100


def sanitize_filename(filename: str) -> tuple[str, str]:
    """
    Split into (stem, ext) with unsafe characters replaced by "_"; the stem is capped at 100 chars.
    """
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    if "." in name:
        stem, ext = name.rsplit(".", 1)
    else:
        stem, ext = name, ""
    stem = _UNSAFE_CHARS.sub("_", stem)[:_MAX_STEM] or "file"
    ext = _UNSAFE_CHARS.sub("", ext).lower()
    return stem, ext


def build_upload_name(filename: str, *, timestamp_ms: int | None = None) -> str:
    stem, ext = sanitize_filename(filename)
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{ts}_{stem}.{ext}" if ext else f"{ts}_{stem}"


@bp.post("/api/admin/upload")
@require_admin
def upload():
    f = request.files.get("file")
    if not f or not f.filename:
        return json_error("No file provided.", 400)

    upload_type = (request.form.get("type") or request.args.get("type") or "file").strip().lower()
    content_type = (f.mimetype or "").lower()
    allowed = IMAGE_MIME_TYPES if upload_type == "image" else FILE_MIME_TYPES
    if content_type not in allowed:
        return json_error(f"File type not allowed: {content_type or 'unknown'}", 400)

    data = f.read()
    max_bytes = int(current_app.config.get("UPLOAD_MAX_BYTES") or 10 * 1024 * 1024)
    if len(data) > max_bytes:
        return json_error(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.", 400)
    if not data:
        return json_error("File is empty.", 400)

    folder = "images" if content_type in IMAGE_MIME_TYPES else "files"
    filename = build_upload_name(f.filename)
    key = f"{folder}/{filename}"
    try:
        storage_from_config(current_app.config).put_bytes(key, data, content_type=content_type)
    except StorageError as e:
        current_app.logger.error("Upload %s failed: %s", key, e)
        return json_error("Failed to store file.", 502)

    s = db_session()
    record_event(
        s,
        actor=current_user(),
        action="upload.create",
        entity_type="Upload",
        entity_id=key,
        metadata={"original_filename": f.filename, "size": len(data), "content_type": content_type},
    )
    s.commit()
    current_app.logger.info("Stored upload %s (%s bytes)", key, len(data))

    return jsonify(
        {
            "success": True,
            "url": f"/uploads/{key}",
            "filename": filename,
            "size": len(data),
            "type": content_type,
        }
    ), 201


@bp.get("/uploads/<folder>/<filename>")
def serve_upload(folder: str, filename: str):
    if folder not in UPLOAD_FOLDERS or "/" in filename or filename.startswith("."):
        abort(404)
    key = f"{folder}/{filename}"
    storage = storage_from_config(current_app.config)
    try:
        if not storage.exists(key):
            abort(404)
        fh = storage.open(key)
    except StorageError:
        abort(404)

    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    mimetype = EXTENSION_MIME_TYPES.get(ext, "application/octet-stream")
    resp = send_file(fh, mimetype=mimetype, download_name=filename)
    resp.headers["Cache-Control"] = "public, max-age=31536000, immutable"
    return resp

"""Layout generation and storage API routes.

Endpoints:
  POST /api/layout/generate   generate a layout (optionally save it)
  POST /api/layout/decode     decode a JSON / binary layout into the current schema
  GET  /api/layouts           list saved layouts (summaries only)
  GET  /api/layouts/<id>      fetch a saved layout (?format=binary for raw bytes)

Errors are returned as JSON. Invalid parameters and undecodable payloads are
400; a generation stage failure is 422 with the failing stage, seed and
parameters so the request can be replayed exactly.
"""

import threading

from flask import Blueprint, Response, current_app, jsonify, request

from floorgen import db
from floorgen.layout import (
    ConfigurationError,
    DecodeError,
    GenerationFailure,
    GenerationRequest,
    decode_binary,
    decode_document,
    derive_seed,
    encode_binary,
    generate_layout,
)
from floorgen.layout.codec import binary_to_document, document_to_layout, layout_to_document
from floorgen.logging_utils import get_logger
from floorgen.models import SavedLayout

log = get_logger("floorgen.api")

bp_layout = Blueprint("layout_api", __name__)

# Simple in-process cache request-key -> GenerationResult. Thread-safe with a lock
# because the dev server handles requests on multiple threads.
_layout_cache = {}
_layout_cache_lock = threading.Lock()
_LAYOUT_CACHE_MAX = 16


def get_cached_layout(gen_request: GenerationRequest):
    if current_app.config.get("FLOORGEN_DISABLE_CACHE"):
        return generate_layout(gen_request, enable_metrics=current_app.config.get("FLOORGEN_ENABLE_GENERATION_METRICS"))
    key = gen_request.cache_key()
    with _layout_cache_lock:
        cached = _layout_cache.get(key)
        if cached is not None:
            return cached
    result = generate_layout(gen_request, enable_metrics=current_app.config.get("FLOORGEN_ENABLE_GENERATION_METRICS"))
    with _layout_cache_lock:
        _layout_cache[key] = result
        if len(_layout_cache) > _LAYOUT_CACHE_MAX:
            first_key = next(iter(_layout_cache.keys()))
            if first_key != key:
                _layout_cache.pop(first_key, None)
    return result


def clear_layout_cache():
    with _layout_cache_lock:
        _layout_cache.clear()


def _build_request(data: dict) -> GenerationRequest:
    params = dict(data)
    params["seed"] = derive_seed(params.get("seed"))
    budget = current_app.config.get("FLOORGEN_TIME_BUDGET_MS")
    if budget and "time_budget_ms" not in params:
        params["time_budget_ms"] = budget
    try:
        return GenerationRequest.from_dict(params).validate()
    except TypeError as exc:
        raise ConfigurationError(f"invalid parameters: {exc}") from exc


@bp_layout.route("/api/layout/generate", methods=["POST"])
def generate():
    """Generate a layout.

    Body JSON: any GenerationRequest field (seed may be int, str or omitted)
    plus optional ``save`` (bool), ``name`` (str) and ``schemaVersion``.

    Response: { seed, layout, warnings, metrics, savedId }
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "request body must be a JSON object", "stage": "configuration"}), 400
    save = bool(data.pop("save", False))
    name = data.pop("name", None)
    schema_version = data.pop("schemaVersion", None)
    try:
        gen_request = _build_request(data)
        result = get_cached_layout(gen_request)
        document = layout_to_document(result.layout, schema_version or result.layout.schema_version)
    except ConfigurationError as exc:
        return jsonify(exc.to_dict()), 400
    except GenerationFailure as exc:
        return jsonify(exc.to_dict()), 422

    saved_id = None
    if save:
        layout = result.layout
        record = SavedLayout(
            name=name,
            seed=layout.seed,
            schema_version=layout.schema_version,
            width=layout.width,
            height=layout.height,
            room_count=len(layout.rooms),
            corridor_count=len(layout.corridors),
            payload=encode_binary(layout),
            params=gen_request.to_dict(),
        )
        db.session.add(record)
        db.session.commit()
        saved_id = record.id
        log.info(event="layout_saved", id=saved_id, seed=layout.seed, rooms=len(layout.rooms))

    return jsonify(
        {
            "seed": gen_request.seed,
            "layout": document,
            "warnings": [str(w) for w in result.warnings],
            "metrics": result.metrics,
            "savedId": saved_id,
        }
    )


@bp_layout.route("/api/layout/decode", methods=["POST"])
def decode():
    """Decode a serialized layout (JSON, gzipped JSON or binary) and return it upgraded."""
    payload = request.get_data()
    try:
        if request.mimetype == "application/octet-stream":
            document = binary_to_document(payload)
        else:
            document = decode_document(payload)
        # Full structural decode so dangling references are rejected too
        layout = document_to_layout(document)
    except DecodeError as exc:
        return jsonify({"error": str(exc), "stage": "decode"}), 400
    return jsonify({"layout": layout_to_document(layout), "summary": layout.summary()})


@bp_layout.route("/api/layouts")
def list_layouts():
    rows = SavedLayout.query.order_by(SavedLayout.id.asc()).all()
    return jsonify({"layouts": [row.summary() for row in rows]})


@bp_layout.route("/api/layouts/<int:layout_id>")
def get_layout(layout_id: int):
    record = db.session.get(SavedLayout, layout_id)
    if record is None:
        return jsonify({"error": "layout not found"}), 404
    if request.args.get("format") == "binary":
        return Response(record.payload, mimetype="application/octet-stream")
    try:
        layout = decode_binary(record.payload)
    except DecodeError as exc:
        log.error(event="saved_layout_corrupt", id=layout_id, reason=str(exc))
        return jsonify({"error": str(exc), "stage": "decode"}), 500
    return jsonify({"layout": layout_to_document(layout), "summary": record.summary()})

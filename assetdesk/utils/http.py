# assetdesk/utils/http.py
"""Request/response plumbing shared by the API blueprints."""
from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from flask import current_app, jsonify, request

from ..errors import ValidationFailed
from ..extensions import db, limiter
from ..schemas import ExportRequest, validate_payload
from ..serializers import page_json
from ..services.exporting import export_response
from ..services.listing import ListState, ViewDefinition, run_list_view

_TRUTHY = {"1", "true", "yes", "on"}

# Exports render whole tables (and PDFs), so they get their own budget.
export_limit = limiter.limit(lambda: current_app.config["EXPORT_RATE_LIMIT"])


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object.")
    return data


def flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in _TRUTHY


def list_state(view: ViewDefinition, source: Mapping[str, Any] | None = None) -> ListState:
    cfg = current_app.config
    return ListState.from_mapping(
        request.args if source is None else source,
        view,
        page_sizes=tuple(cfg.get("LIST_PAGE_SIZES") or (10, 15, 25, 50)),
        default_page_size=int(cfg.get("DEFAULT_PAGE_SIZE") or 10),
    )


def list_response(
    fetch: Callable[[], Iterable[Any]],
    view: ViewDefinition,
    serialize: Callable[[Any], dict[str, Any]],
    *,
    extra: dict[str, Any] | None = None,
):
    """GET list endpoint body: state from the query string, one shared engine."""
    state = list_state(view)
    result = run_list_view(fetch, view, state)
    body = page_json(result, serialize, state, extra)
    if not result.ok:
        db.session.rollback()
        return jsonify(body), 500
    return jsonify(body), 200


def export_view(kind: str, fetch: Callable[[], Iterable[Any]], view: ViewDefinition, **pdf_options: Any):
    """
    POST export endpoint body. The JSON body carries the same list state the
    list endpoint reads from the query string, plus `columns` and `title`.
    """
    if request.is_json:
        source: Mapping[str, Any] = json_body()
        payload = {"columns": source.get("columns"), "title": source.get("title")}
    else:
        source = request.args
        payload = {"columns": request.args.getlist("columns") or None, "title": request.args.get("title")}

    state = list_state(view, source)
    options = validate_payload(ExportRequest, payload)
    if options.title:
        pdf_options.setdefault("title", options.title)
    return export_response(kind, fetch(), view, state, options.columns, **pdf_options)

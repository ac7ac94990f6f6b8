# assetdesk/services/exporting.py
from __future__ import annotations

import csv
import io
import multiprocessing
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from flask import Response, current_app, make_response, render_template, request

from ..config import institution_context
from ..errors import ExportFailed, ValidationFailed
from .listing import Column, ListState, ViewDefinition, filter_and_sort
from .status import utc_today

CSV = "csv"
PDF = "pdf"
EXPORT_KINDS = (CSV, PDF)

# Above this many columns the list report switches to landscape.
_PORTRAIT_MAX_COLUMNS = 6


# =========================================================
# Types
# =========================================================
@dataclass(frozen=True)
class ExportFile:
    filename: str
    mimetype: str
    data: bytes


def _safe_filename(s: str) -> str:
    s = (s or "").strip()
    s = re.sub(r"[^A-Za-z0-9._-]+", "_", s)
    return s[:120] or "export"


def export_filename(entity: str, ext: str) -> str:
    return f"{_safe_filename(entity)}_{utc_today().isoformat()}.{ext}"


# =========================================================
# CSV
# =========================================================
def csv_bytes(columns: Sequence[Column], rows: Iterable[Any]) -> bytes:
    buf = io.StringIO()
    w = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    w.writerow([c.label for c in columns])
    for r in rows:
        w.writerow([c.text(r) for c in columns])
    # BOM so spreadsheet tools pick UTF-8
    return buf.getvalue().encode("utf-8-sig")


def export_csv(
    records: Iterable[Any],
    view: ViewDefinition,
    state: ListState,
    columns: Sequence[str] | None = None,
) -> ExportFile:
    cols = view.visible(columns)
    rows = filter_and_sort(records, view, state)
    return ExportFile(
        filename=export_filename(view.entity, CSV),
        mimetype="text/csv; charset=utf-8",
        data=csv_bytes(cols, rows),
    )


# =========================================================
# PDF rendering
# =========================================================
def _resolve_base_url(explicit: str | None) -> str:
    """WeasyPrint base_url resolves relative links (static assets)."""
    if explicit:
        return explicit if explicit.endswith("/") else (explicit + "/")
    try:
        return request.url_root
    except RuntimeError:
        # outside a request (CLI / tests)
        return "/"


def _write_pdf(html: str, base_url: str) -> bytes:
    # Pango/cairo loading is slow; only pay for it when a PDF is requested.
    from weasyprint import HTML

    return HTML(string=html, base_url=base_url).write_pdf()


# spawn: a clean interpreter, no locks inherited from the request threads
_MP = multiprocessing.get_context("spawn")


class RenderTimeout(Exception):
    pass


def _render_child(conn, writer, html: str, base_url: str) -> None:
    """Child process body. The outcome goes back over the pipe."""
    try:
        conn.send(("ok", writer(html, base_url)))
    except Exception as exc:
        conn.send(("error", f"{type(exc).__name__}: {exc}"))
    finally:
        conn.close()


def _stop(proc) -> None:
    if proc.is_alive():
        proc.terminate()
        proc.join(5)
    if proc.is_alive():
        proc.kill()
    proc.join()


def _render_isolated(html: str, base_url: str, limit: float) -> bytes:
    """
    Run the PDF writer in its own process. On timeout the process is
    terminated, so an abandoned render never outlives its request.
    """
    receiver, sender = _MP.Pipe(duplex=False)
    proc = _MP.Process(
        target=_render_child,
        args=(sender, _write_pdf, html, base_url),
        name="pdf-render",
        daemon=True,
    )
    proc.start()
    sender.close()
    try:
        if not receiver.poll(limit):
            raise RenderTimeout()
        outcome, payload = receiver.recv()
    except EOFError as exc:
        raise RuntimeError(f"PDF renderer exited with code {proc.exitcode}") from exc
    finally:
        receiver.close()
        _stop(proc)

    if outcome != "ok":
        raise RuntimeError(payload)
    return payload


def render_pdf(html: str, *, base_url: str | None = None, timeout: float | None = None) -> bytes:
    """
    Convert rendered HTML to PDF bytes in a child process, bounded by
    PDF_RENDER_TIMEOUT. The process is stopped whatever the outcome.
    """
    limit = timeout if timeout is not None else current_app.config.get("PDF_RENDER_TIMEOUT", 30)
    resolved = _resolve_base_url(base_url)

    try:
        pdf = _render_isolated(html, resolved, limit)
    except RenderTimeout as exc:
        current_app.logger.error("PDF rendering exceeded %ss", limit)
        raise ExportFailed("PDF generation timed out.") from exc
    except Exception as exc:
        current_app.logger.exception("PDF rendering failed")
        raise ExportFailed() from exc

    if not pdf:
        raise ExportFailed()
    return pdf


def render_template_pdf(template: str, *, base_url: str | None = None, **context: Any) -> bytes:
    """Render a Jinja template (autoescaped) and convert it to PDF bytes."""
    now_utc = datetime.now(timezone.utc)
    html = render_template(
        template,
        institution=institution_context(),
        generated_at=now_utc.strftime("%Y-%m-%d %H:%M UTC"),
        **context,
    )
    return render_pdf(html, base_url=base_url)


def export_pdf(
    records: Iterable[Any],
    view: ViewDefinition,
    state: ListState,
    columns: Sequence[str] | None = None,
    *,
    title: str | None = None,
    subtitle: str | None = None,
) -> ExportFile:
    cols = view.visible(columns)
    rows = filter_and_sort(records, view, state)
    data = render_template_pdf(
        "pdfs/list_report.html",
        title=title or view.title,
        subtitle=subtitle,
        columns=cols,
        rows=[[c.text(r) for c in cols] for r in rows],
        total=len(rows),
        landscape=len(cols) > _PORTRAIT_MAX_COLUMNS,
        filters=_describe_filters(view, state),
    )
    return ExportFile(
        filename=export_filename(view.entity, PDF),
        mimetype="application/pdf",
        data=data,
    )


def _describe_filters(view: ViewDefinition, state: ListState) -> list[str]:
    out: list[str] = []
    if state.attribute:
        label = view.column(state.attribute).label
        if state.date_from or state.date_to:
            lo = state.date_from.isoformat() if state.date_from else "..."
            hi = state.date_to.isoformat() if state.date_to else "..."
            out.append(f"{label}: {lo} to {hi}")
        elif state.search:
            out.append(f"{label} contains \"{state.search}\"")
    elif state.search:
        out.append(f"Search: \"{state.search}\"")
    if state.selected and view.multi_select:
        out.append(f"{view.column(view.multi_select).label}: {', '.join(sorted(state.selected))}")
    return out


# =========================================================
# Flask responses
# =========================================================
def file_response(export: ExportFile) -> Response:
    resp = make_response(export.data)
    resp.headers["Content-Type"] = export.mimetype
    resp.headers["Content-Disposition"] = f'attachment; filename="{export.filename}"'
    resp.headers["Cache-Control"] = "no-store"
    return resp


def export_response(
    kind: str,
    records: Iterable[Any],
    view: ViewDefinition,
    state: ListState,
    columns: Sequence[str] | None = None,
    **pdf_options: Any,
) -> Response:
    if kind not in EXPORT_KINDS:
        raise ValidationFailed(f"Unsupported export format '{kind}'.", field="format")
    cols = view.visible(columns)

    try:
        if kind == CSV:
            export = export_csv(records, view, state, [c.uid for c in cols])
        else:
            export = export_pdf(records, view, state, [c.uid for c in cols], **pdf_options)
    except ExportFailed:
        raise
    except Exception as exc:
        current_app.logger.exception("%s export of %s failed", kind.upper(), view.entity)
        raise ExportFailed() from exc

    current_app.logger.info("Exported %s as %s (%s bytes)", view.entity, kind, len(export.data))
    return file_response(export)

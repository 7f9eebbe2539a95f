"""Archive export of completed reports.

One entry point, :func:`export_archive`, shared table layout and two
backends picked by the caller:

- PdfArchiveBackend: a reportlab PDF (CLI download, saved file)
- HtmlPrintBackend: a printable HTML page that opens the browser print dialog
"""

from __future__ import annotations

import base64
import io
import logging
import mimetypes
import os
import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Protocol
from xml.sax.saxutils import escape as xml_escape

from jinja2 import Environment, FileSystemLoader, select_autoescape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.utils import ImageReader
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from pelakor.core.config import TEMPLATES_DIR, settings
from pelakor.core.schemas import Laporan
from pelakor.utils.dates import format_date, format_datetime

logger = logging.getLogger("pelakor.export")

DEFAULT_TITLE = "Daftar Laporan Selesai"
REPORT_HEADING = "LAPORAN ARSIP PELAPORAN"
EMPTY_MESSAGE = "Tidak ada laporan yang sesuai dengan kriteria yang dipilih."

# (header, relative width); scaled to the table width when rendered
ARCHIVE_COLUMNS: tuple[tuple[str, int], ...] = (
    ("No", 30),
    ("Judul Laporan", 215),
    ("Pelapor", 135),
    ("Status", 80),
    ("Tgl Disposisi", 85),
    ("Tgl Tindak Lanjut", 115),
    ("Tgl Selesai", 82),
)


class ArchiveExportError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EmptyArchiveError(ArchiveExportError):
    """No rows to export; nothing is rendered."""


@dataclass(frozen=True)
class TruncateLimits:
    judul: int
    pelapor: int
    tindak_lanjut: int | None = None


PDF_LIMITS = TruncateLimits(judul=40, pelapor=25, tindak_lanjut=20)
HTML_LIMITS = TruncateLimits(judul=60, pelapor=30)


@dataclass
class ArchiveOptions:
    title: str = DEFAULT_TITLE
    start_date: date | None = None
    end_date: date | None = None
    instansi: str = field(default_factory=lambda: settings.INSTANSI_NAME)
    logo_path: str = field(default_factory=lambda: settings.LOGO_PATH)
    printed_at: datetime | None = None

    @property
    def has_period(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    def period_text(self) -> str:
        start = format_date(self.start_date) if self.start_date else "Awal"
        end = format_date(self.end_date) if self.end_date else "Akhir"
        return f"{start} - {end}"


@dataclass
class ArchiveRow:
    no: int
    judul: str
    pelapor: str
    status: str
    tgl_disposisi: str
    tgl_tindak_lanjut: list[str]
    tgl_selesai: str


def _discard(path: str) -> None:
    if os.path.exists(path):
        os.unlink(path)


@dataclass
class ArchiveFile:
    filename: str
    media_type: str
    content: bytes

    def save(self, directory: str | os.PathLike[str] | None = None) -> Path:
        """Write into ``directory`` via a temp file + rename; no partial file on failure."""
        target_dir = Path(os.path.expanduser(str(directory or settings.EXPORT_DIR)))
        target = target_dir / self.filename
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=target_dir, prefix=".export-", suffix=".tmp")
        except OSError as exc:
            raise ArchiveExportError(f"Gagal menyimpan arsip ke {target_dir}: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(self.content)
            os.replace(tmp, target)
        except OSError as exc:
            _discard(tmp)
            raise ArchiveExportError(f"Gagal menyimpan arsip ke {target}: {exc}") from exc
        except BaseException:
            _discard(tmp)
            raise
        return target


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def build_rows(reports: Iterable[Laporan], limits: TruncateLimits) -> list[ArchiveRow]:
    rows: list[ArchiveRow] = []
    for i, lap in enumerate(reports, start=1):
        rows.append(
            ArchiveRow(
                no=i,
                judul=truncate_text(lap.judul_laporan or "-", limits.judul),
                pelapor=truncate_text(lap.pelapor or "-", limits.pelapor),
                status=lap.status_label,
                tgl_disposisi=format_date(lap.tanggal_disposisi),
                tgl_tindak_lanjut=[format_date(d) for d in (lap.tanggal_tindak_lanjut or [])],
                tgl_selesai=format_date(lap.updated_at),
            )
        )
    return rows


def _timestamp_ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


class ArchiveBackend(Protocol):
    name: str

    def render(self, reports: list[Laporan], options: ArchiveOptions) -> ArchiveFile: ...


# ---- PDF (reportlab platypus) ----

PAGE_SIZE = landscape(A4)
PAGE_W, PAGE_H = PAGE_SIZE
MARGIN = 50
# Frame keeps 6pt padding on each side
TABLE_WIDTH = PAGE_W - 2 * MARGIN - 12
LETTERHEAD_H = 100
LOGO_SIZE = 60

HEADER_FILL = colors.HexColor("#e6e6e6")
STRIPE_FILL = colors.HexColor("#fafafa")
GRID_COLOR = colors.HexColor("#808080")
MUTED = colors.HexColor("#666666")

_styles = getSampleStyleSheet()
CELL = ParagraphStyle(name="ArsipCell", parent=_styles["Normal"], fontName="Times-Roman", fontSize=9, leading=11)
CELL_HEAD = ParagraphStyle(name="ArsipHead", parent=CELL, fontName="Times-Bold", fontSize=10, leading=12)
SUMMARY = ParagraphStyle(name="ArsipSummary", parent=CELL, fontName="Times-Bold", fontSize=12, leading=16)
PERIOD = ParagraphStyle(name="ArsipPeriod", parent=CELL, fontSize=10, leading=14)


def _cell(text: str, style: ParagraphStyle = CELL) -> Paragraph:
    return Paragraph(xml_escape(text), style)


def archive_table(rows: list[ArchiveRow], width: float = TABLE_WIDTH) -> Table:
    """Archive rows as one platypus table; the header row repeats on every page."""
    data = [[_cell(h, CELL_HEAD) for h, _ in ARCHIVE_COLUMNS]]
    for r in rows:
        tindak = ", ".join(r.tgl_tindak_lanjut) or "-"
        data.append(
            [_cell(v) for v in (str(r.no), r.judul, r.pelapor, r.status, r.tgl_disposisi, tindak, r.tgl_selesai)]
        )

    widths = [w for _, w in ARCHIVE_COLUMNS]
    scale = width / sum(widths)
    t = Table(data, colWidths=[w * scale for w in widths], repeatRows=1)
    t.splitByRow = 1
    t.setStyle(
        TableStyle(
            [
                ("BOX", (0, 0), (-1, -1), 1, colors.black),
                ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
                ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
                # Zebra rows, first data row shaded
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [STRIPE_FILL, colors.white]),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("LEFTPADDING", (0, 0), (-1, -1), 5),
                ("RIGHTPADDING", (0, 0), (-1, -1), 5),
                ("TOPPADDING", (0, 0), (-1, -1), 6),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    return t


def _load_logo(path: str) -> ImageReader | None:
    if not path:
        return None
    try:
        return ImageReader(path)
    except Exception as exc:
        logger.warning("Failed to load logo %s: %s", path, exc)
        return None


def _letterhead(canvas, doc, options: ArchiveOptions, logo: ImageReader | None, now: datetime) -> None:
    canvas.saveState()
    top = PAGE_H - MARGIN
    text_x = MARGIN
    if logo is not None:
        canvas.drawImage(logo, MARGIN, top - LOGO_SIZE, width=LOGO_SIZE, height=LOGO_SIZE, mask="auto")
        text_x = MARGIN + LOGO_SIZE + 20

    canvas.setFillColor(colors.black)
    canvas.setFont("Times-Bold", 16)
    canvas.drawString(text_x, top - 15, options.instansi)
    canvas.setFont("Times-Bold", 14)
    canvas.drawString(text_x, top - 35, REPORT_HEADING)
    canvas.setFont("Times-Roman", 12)
    canvas.drawString(text_x, top - 55, options.title or DEFAULT_TITLE)

    canvas.setFillColor(MUTED)
    canvas.setFont("Times-Roman", 10)
    canvas.drawRightString(PAGE_W - MARGIN, top - LETTERHEAD_H + 10, f"Tanggal Cetak: {format_datetime(now)}")
    canvas.restoreState()


def _footer(canvas, doc, total_pages: int) -> None:
    canvas.saveState()
    canvas.setFillColor(GRID_COLOR)
    canvas.setFont("Times-Roman", 8)
    canvas.drawRightString(PAGE_W - MARGIN, 30, f"Halaman {canvas.getPageNumber()} dari {total_pages}")
    canvas.restoreState()


def _story(rows: list[ArchiveRow], options: ArchiveOptions) -> list[Any]:
    story: list[Any] = [Spacer(1, LETTERHEAD_H), archive_table(rows), Spacer(1, 30)]
    story.append(Paragraph(f"Total Laporan: {len(rows)}", SUMMARY))
    if options.has_period:
        story.append(Paragraph(xml_escape(f"Filter Periode: {options.period_text()}"), PERIOD))
    return story


def build_pdf(rows: list[ArchiveRow], options: ArchiveOptions, now: datetime) -> tuple[bytes, int]:
    """Lay out the archive and return ``(pdf bytes, page count)``.

    The footer needs the page count, so the document is laid out once to
    count pages and then built again.
    """
    logo = _load_logo(options.logo_path)

    def build(total_pages: int) -> tuple[bytes, int]:
        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=PAGE_SIZE,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=MARGIN,
            title=options.title or DEFAULT_TITLE,
        )
        pages: list[int] = []

        def later_pages(c, d):
            pages.append(c.getPageNumber())
            _footer(c, d, total_pages)

        def first_page(c, d):
            _letterhead(c, d, options, logo, now)
            later_pages(c, d)

        doc.build(_story(rows, options), onFirstPage=first_page, onLaterPages=later_pages)
        return buf.getvalue(), len(pages)

    _, total = build(0)
    return build(total)


class PdfArchiveBackend:
    name = "pdf"
    media_type = "application/pdf"
    limits = PDF_LIMITS

    def render(self, reports: list[Laporan], options: ArchiveOptions) -> ArchiveFile:
        now = options.printed_at or datetime.now()
        content, pages = build_pdf(build_rows(reports, self.limits), options, now)
        logger.info("Archive PDF built rows=%s pages=%s", len(reports), pages)
        return ArchiveFile(
            filename=f"laporan_{_timestamp_ms(now)}.pdf",
            media_type=self.media_type,
            content=content,
        )


# ---- HTML print page ----

_jinja = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


def _logo_data_uri(path: str) -> str | None:
    if not path:
        return None
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        logger.warning("Failed to load logo %s: %s", path, exc)
        return None
    mime = mimetypes.guess_type(path)[0] or "image/png"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


class HtmlPrintBackend:
    name = "html"
    media_type = "text/html; charset=utf-8"
    limits = HTML_LIMITS
    template_name = "arsip/print.html"

    def render_html(self, reports: list[Laporan], options: ArchiveOptions) -> str:
        now = options.printed_at or datetime.now()
        tpl = _jinja.get_template(self.template_name)
        return tpl.render(
            title=options.title or DEFAULT_TITLE,
            instansi=options.instansi,
            heading=REPORT_HEADING,
            printed_at=format_datetime(now),
            columns=[h for h, _ in ARCHIVE_COLUMNS],
            rows=build_rows(reports, self.limits),
            total=len(reports),
            period=options.period_text() if options.has_period else None,
            logo_src=_logo_data_uri(options.logo_path),
        )

    def render(self, reports: list[Laporan], options: ArchiveOptions) -> ArchiveFile:
        now = options.printed_at or datetime.now()
        html = self.render_html(reports, options)
        return ArchiveFile(
            filename=f"laporan_{_timestamp_ms(now)}.html",
            media_type=self.media_type,
            content=html.encode("utf-8"),
        )


BACKENDS: dict[str, type] = {"pdf": PdfArchiveBackend, "html": HtmlPrintBackend}


def get_backend(name: str) -> ArchiveBackend:
    try:
        return BACKENDS[name]()
    except KeyError:
        raise ArchiveExportError(f"Format ekspor tidak dikenal: {name}") from None


def _as_laporan(item: Any) -> Laporan:
    return item if isinstance(item, Laporan) else Laporan.model_validate(item)


def export_archive(
    reports: Iterable[Laporan | dict[str, Any]],
    options: ArchiveOptions | None = None,
    backend: ArchiveBackend | None = None,
) -> ArchiveFile:
    """Render the archive table with ``backend`` (PDF by default).

    Raises:
        EmptyArchiveError: when there is nothing to export; no backend is called.
        ArchiveExportError: any failure while building the document.
    """
    items = list(reports)
    if not items:
        raise EmptyArchiveError(EMPTY_MESSAGE)

    options = options or ArchiveOptions()
    backend = backend or PdfArchiveBackend()
    try:
        return backend.render([_as_laporan(x) for x in items], options)
    except ArchiveExportError:
        raise
    except Exception as exc:
        logger.exception("Archive export failed backend=%s", getattr(backend, "name", backend))
        raise ArchiveExportError(f"Gagal membuat PDF: {exc}") from exc

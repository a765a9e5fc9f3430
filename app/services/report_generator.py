"""
PDF report generator for Achalasia Cardia AI.

Lays an AnalysisResult out over A4 pages with the layout engine, stamps
the footers once the page count is known, and renders the pages to PDF
through an HTML template and WeasyPrint.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from jinja2 import Environment, select_autoescape

# Try to import WeasyPrint, make it optional
try:
    from weasyprint import HTML
    WEASYPRINT_AVAILABLE = True
except (ImportError, OSError):
    WEASYPRINT_AVAILABLE = False
    HTML = None

from app.config import settings
from app.models.schemas import AchalasiaType, AnalysisResult, KeyIndicators
from app.services.layout_engine import (
    PT_TO_MM,
    Circle,
    Document,
    DrawOp,
    LayoutSession,
    PageGeometry,
    Rect,
    Rule,
    Text,
    draw_lines,
    finalize_chrome,
    fit_line,
    wrap_text,
)
from app.services.presentation import (
    ACHALASIA_TYPE_LABELS,
    Colors,
    diagnosis_tone,
    indicator_label,
    severity_tone,
    tone_color,
)
from app.utils.logger import get_logger

logger = get_logger("report_generator")

# Section names, in layout order
SECTION_METADATA = "metadata"
SECTION_DIAGNOSIS = "diagnosis"
SECTION_INDICATORS = "indicators"
SECTION_FINDINGS = "findings"
SECTION_NOTES = "clinical_notes"
SECTION_DIFFERENTIALS = "differential_diagnoses"
SECTION_RECOMMENDATIONS = "recommendations"

SECTION_ORDER = (
    SECTION_METADATA,
    SECTION_DIAGNOSIS,
    SECTION_INDICATORS,
    SECTION_FINDINGS,
    SECTION_NOTES,
    SECTION_DIFFERENTIALS,
    SECTION_RECOMMENDATIONS,
)

FILENAME_PREFIX = "Achalasia_Report"
FOOTER_DISCLAIMER = (
    "AI-Assisted Analysis • For Clinical Reference Only • "
    "Not a Substitute for Professional Medical Diagnosis"
)

HEADING_HEIGHT = 8.0
INDICATOR_COLUMNS = 3
INDICATOR_ROW_HEIGHT = 10.0
TABLE_HEADER_HEIGHT = 8.0
LINE_LEADING = 4.0
FINDING_COLUMN_WIDTH = 93.0
LOCATION_COLUMN_WIDTH = 40.0
DIFFERENTIAL_ROW_HEIGHT = 6.0
NOTES_PADDING = 6.0
NOTES_CONTINUED = "[Continued: the full interpretation is in the JSON analysis response]"
BADGE_WIDTH = 12.0
BADGE_HEIGHT = 6.0


# =============================================================================
# Naming helpers
# =============================================================================

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def to_base36(value: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def make_report_id(generated_at: datetime) -> str:
    """Report ID derived from the generation time in epoch milliseconds."""
    return f"ACH-{to_base36(int(generated_at.timestamp() * 1000))}"


def report_filename(file_name: str, generated_at: datetime, extension: str = "pdf") -> str:
    """
    Deterministic download name for a report.

    ``scan 01.final.png`` on 2026-10-19 gives
    ``Achalasia_Report_scan_01.final_2026-10-19.pdf``.
    """
    stem = re.sub(r"\.[^.]+$", "", Path(file_name or "").name)
    stem = _UNSAFE_CHARS.sub("_", stem).strip("_") or "scan"
    return f"{FILENAME_PREFIX}_{stem}_{generated_at:%Y-%m-%d}.{extension}"


# =============================================================================
# Layout
# =============================================================================

class ReportLayout:
    """
    Single-use layout of one AnalysisResult.

    Owns its LayoutSession; sections are drawn in SECTION_ORDER and empty
    ones are skipped.
    """

    def __init__(
        self,
        analysis: AnalysisResult,
        file_name: str,
        report_id: str,
        generated_at: datetime,
        geometry: Optional[PageGeometry] = None
    ):
        self.analysis = analysis
        self.file_name = file_name
        self.report_id = report_id
        self.generated_at = generated_at
        self.session = LayoutSession(geometry, page_header=self._continuation_header)
        self.g = self.session.geometry

    def run(self) -> Document:
        self._first_page_header()
        self._metadata_strip()
        self._diagnosis_card()
        self._indicator_grid()
        if self.analysis.findings:
            self._findings_table()
        if self.analysis.clinical_notes:
            self._clinical_notes()
        if self.analysis.differential_diagnoses:
            self._differential_diagnoses()
        if self.analysis.recommendations:
            self._recommendations()
        return self.session.document()

    # -- chrome ---------------------------------------------------------------

    def _first_page_header(self) -> None:
        g = self.g
        right = g.width - g.margin
        band = g.first_header_height - 3
        self.session.draw(
            Rect(0, 0, g.width, band, fill=Colors.NAVY, style="header"),
            Rect(0, band, g.width, 3, fill=Colors.BLUE),
            Text(g.margin, 18, "ACHALASIA CARDIA", 20, Colors.WHITE, bold=True),
            Text(g.margin, 26, "AI-Assisted Diagnostic Report", 11, Colors.WHITE),
            Text(right, 14, f"Report ID: {self.report_id}", 8, Colors.WHITE, align="right"),
            Text(right, 20, f"Date: {self._long_date()}", 8, Colors.WHITE, align="right"),
            Text(right, 26, f"Time: {self.generated_at:%I:%M:%S %p}", 8, Colors.WHITE,
                 align="right"),
        )

    def _continuation_header(self, session: LayoutSession) -> None:
        g = self.g
        band = g.continuation_header_height - 1
        session.draw(
            Rect(0, 0, g.width, band, fill=Colors.NAVY, style="header"),
            Rect(0, band, g.width, 1, fill=Colors.BLUE),
            Text(g.margin, 8.5, "ACHALASIA CARDIA • AI-Assisted Diagnostic Report",
                 9, Colors.WHITE, bold=True),
            Text(g.width - g.margin, 8.5, f"Report ID: {self.report_id}", 7,
                 Colors.WHITE, align="right"),
        )

    def _long_date(self) -> str:
        d = self.generated_at
        return f"{d:%B} {d.day}, {d.year}"

    def _heading(self, section: str, title: str, keep_with: float) -> None:
        """Section title kept on the same page as the first block after it."""
        self.session.reserve(HEADING_HEIGHT + keep_with)
        self.session.claim(section, HEADING_HEIGHT)
        self.session.draw(
            Text(self.g.margin, self.session.y + 4, title, 10, Colors.NAVY, bold=True,
                 style="heading")
        )
        self.session.advance(HEADING_HEIGHT)

    def _claim_item(self, section: str, height: float, first: bool) -> float:
        # The heading has already made room for the first item
        if first:
            return self.session.claim_here(section, height)
        return self.session.claim(section, height)

    # -- sections -------------------------------------------------------------

    def _metadata_strip(self) -> None:
        g, a = self.g, self.analysis
        top = self.session.claim(SECTION_METADATA, 12)
        self.session.draw(
            Rect(g.margin, top, g.content_width, 12, fill=Colors.LIGHT_GRAY, radius=2),
            Text(g.margin + 4, top + 5, "INPUT FILE:", 8, Colors.MUTED_TEXT),
            Text(g.margin + 30, top + 5, fit_line(self.file_name, g.content_width - 34, 9),
                 9, Colors.TEXT, bold=True),
            Text(g.margin + 4, top + 10, f"Image Type: {a.image_type_detected or 'N/A'}",
                 8, Colors.MUTED_TEXT),
            Text(g.margin + 80, top + 10, f"Image Quality: {a.image_quality.value}",
                 8, Colors.MUTED_TEXT),
        )
        self.session.advance(18)

    def _diagnosis_card(self) -> None:
        g, a = self.g, self.analysis
        tone = diagnosis_tone(a.diagnosis)
        accent = tone_color(tone)
        right = g.width - g.margin

        top = self.session.claim(SECTION_DIAGNOSIS, 28, atomic=True)
        self.session.draw(
            Rect(g.margin, top, g.content_width, 28, stroke=Colors.BORDER, radius=2),
            Rect(g.margin + 2, top + 2, 4, 24, fill=accent, radius=1,
                 style=f"accent-{tone.value}"),
            Text(g.margin + 10, top + 7, "PRIMARY DIAGNOSIS", 7, Colors.MUTED_TEXT),
            Text(g.margin + 10, top + 16, f"Achalasia Cardia - {a.diagnosis.value}", 16,
                 Colors.TEXT, bold=True),
            Text(right - 35, top + 7, "CONFIDENCE", 7, Colors.MUTED_TEXT),
            Text(right - 35, top + 20, f"{a.confidence}%", 22, accent, bold=True),
        )
        if a.accuracy_score is not None:
            self.session.draw(
                Text(right - 65, top + 7, "ACCURACY", 7, Colors.MUTED_TEXT),
                Text(right - 65, top + 20, f"{a.accuracy_score}%", 14, Colors.TEXT, bold=True),
            )
        if a.achalasia_type != AchalasiaType.NOT_APPLICABLE:
            label = ACHALASIA_TYPE_LABELS[a.achalasia_type]
            self.session.draw(
                Text(g.margin + 10, top + 25, f"Classification: {label}", 8,
                     Colors.MUTED_TEXT, style="classification")
            )
        self.session.advance(34)

    def _indicator_grid(self) -> None:
        g = self.g
        names = KeyIndicators.names()
        col_width = g.content_width / INDICATOR_COLUMNS
        rows = math.ceil(len(names) / INDICATOR_COLUMNS)

        self._heading(SECTION_INDICATORS, "KEY INDICATORS", INDICATOR_ROW_HEIGHT)
        for row in range(rows):
            top = self.session.claim(SECTION_INDICATORS, INDICATOR_ROW_HEIGHT)
            cells = names[row * INDICATOR_COLUMNS:(row + 1) * INDICATOR_COLUMNS]
            for col, name in enumerate(cells):
                x = g.margin + col * col_width
                detected = self.analysis.key_indicators.detected(name)
                style = "indicator-detected" if detected else "indicator-absent"
                self.session.draw(
                    Rect(x, top, col_width - 3, 8,
                         fill=Colors.DETECTED_FILL if detected else Colors.LIGHT_GRAY,
                         radius=1, style=style),
                    Text(x + 3, top + 5.5, "✓" if detected else "✗", 7,
                         Colors.SUCCESS if detected else Colors.MUTED_TEXT),
                    Text(x + 8, top + 5.5, indicator_label(name), 7.5, Colors.TEXT),
                )
            self.session.advance(INDICATOR_ROW_HEIGHT)
        self.session.advance(6)

    def _finding_rows(self) -> list[tuple[list[str], list[str], float]]:
        rows = []
        for f in self.analysis.findings:
            finding_lines = wrap_text(f.finding, FINDING_COLUMN_WIDTH, 7)
            location_lines = wrap_text(f.location or "-", LOCATION_COLUMN_WIDTH, 7)
            lines = max(len(finding_lines), len(location_lines))
            rows.append((finding_lines, location_lines, lines * LINE_LEADING + 4))
        return rows

    def _findings_table(self) -> None:
        g = self.g
        rows = self._finding_rows()

        self._heading(SECTION_FINDINGS, "DETAILED FINDINGS", TABLE_HEADER_HEIGHT + rows[0][2])
        top = self.session.claim(SECTION_FINDINGS, TABLE_HEADER_HEIGHT)
        self.session.draw(
            Rect(g.margin, top, g.content_width, 7, fill=Colors.NAVY, radius=1,
                 style="table-header"),
            Text(g.margin + 3, top + 5, "Finding", 7, Colors.WHITE, bold=True),
            Text(g.margin + 100, top + 5, "Severity", 7, Colors.WHITE, bold=True),
            Text(g.margin + 130, top + 5, "Location", 7, Colors.WHITE, bold=True),
        )
        self.session.advance(TABLE_HEADER_HEIGHT)

        for i, (finding, (finding_lines, location_lines, height)) in enumerate(
            zip(self.analysis.findings, rows)
        ):
            top = self._claim_item(SECTION_FINDINGS, height, first=i == 0)
            if i % 2 == 0:
                self.session.draw(
                    Rect(g.margin, top, g.content_width, height, fill=Colors.LIGHT_GRAY,
                         style="row-shade")
                )
            tone = severity_tone(finding.severity)
            draw_lines(self.session, finding_lines, g.margin + 3, top + 5, 7, Colors.TEXT)
            self.session.draw(
                Text(g.margin + 100, top + 5, finding.severity.value, 7, tone_color(tone),
                     style=f"severity-{tone.value}")
            )
            draw_lines(self.session, location_lines, g.margin + 130, top + 5, 7,
                       Colors.MUTED_TEXT)
            self.session.advance(height)
        self.session.advance(4)

    def _clinical_notes(self) -> None:
        g = self.g
        lines = wrap_text(self.analysis.clinical_notes, g.content_width - 8, 7.5)
        height = len(lines) * LINE_LEADING + NOTES_PADDING

        # Heading and block move together; the block itself is never split
        self._heading(SECTION_NOTES, "CLINICAL INTERPRETATION", height)
        top = self.session.y

        # A note taller than the page is cut at the content bottom and marked
        fits = int((g.content_bottom - top - NOTES_PADDING) / LINE_LEADING)
        clipped = len(lines) > fits
        if clipped:
            shown = max(fits - 1, 0)
            logger.warning("Clinical notes clipped in report", lines=len(lines), shown=shown)
            lines = lines[:shown]
            height = (shown + 1) * LINE_LEADING + NOTES_PADDING

        self.session.claim_here(SECTION_NOTES, height, atomic=True)
        self.session.draw(
            Rect(g.margin, top, g.content_width, height, stroke=Colors.BORDER, radius=2,
                 style="notes-block")
        )
        draw_lines(self.session, lines, g.margin + 4, top + 5, 7.5, Colors.TEXT)
        if clipped:
            self.session.draw(
                Text(g.margin + 4, top + 5 + len(lines) * LINE_LEADING, NOTES_CONTINUED,
                     7.5, Colors.MUTED_TEXT, style="notes-continued")
            )
        self.session.advance(height + 6)

    def _differential_diagnoses(self) -> None:
        g = self.g
        # Long labels wrap; a one-line label keeps the standard row height
        items = [
            wrap_text(label, g.content_width - 7, 7.5)
            for label in self.analysis.differential_diagnoses
        ]
        heights = [
            DIFFERENTIAL_ROW_HEIGHT + (len(lines) - 1) * LINE_LEADING for lines in items
        ]

        self._heading(SECTION_DIFFERENTIALS, "DIFFERENTIAL DIAGNOSES", heights[0])
        for i, (lines, height) in enumerate(zip(items, heights)):
            top = self._claim_item(SECTION_DIFFERENTIALS, height, first=i == 0)
            self.session.draw(Circle(g.margin + 3, top + 2, 1, Colors.LIGHT_GRAY))
            draw_lines(self.session, lines, g.margin + 7, top + 3.5, 7.5, Colors.TEXT,
                       style="differential")
            self.session.advance(height)
        self.session.advance(4)

    def _recommendations(self) -> None:
        g = self.g
        items = [
            (text, wrap_text(text, g.content_width - 18, 7.5))
            for text in self.analysis.recommendations
        ]
        heights = [max(len(lines) * LINE_LEADING, BADGE_HEIGHT) + 4 for _, lines in items]

        self._heading(SECTION_RECOMMENDATIONS, "RECOMMENDATIONS", heights[0])
        for number, ((_, lines), height) in enumerate(zip(items, heights), start=1):
            top = self._claim_item(SECTION_RECOMMENDATIONS, height, first=number == 1)
            self.session.draw(
                Rect(g.margin, top, BADGE_WIDTH, BADGE_HEIGHT, fill=Colors.BLUE, radius=1,
                     style="badge"),
                Text(g.margin + BADGE_WIDTH / 2, top + 4.2, str(number), 7, Colors.WHITE,
                     align="center"),
            )
            draw_lines(self.session, lines, g.margin + 15, top + 4, 7.5, Colors.TEXT)
            self.session.advance(height)


def footer_ops(
    page_number: int,
    page_count: int,
    geometry: PageGeometry,
    attribution: str = ""
) -> list[DrawOp]:
    """Footer band for one page; needs the final page count."""
    g = geometry
    band = g.height - g.footer_top
    ops: list[DrawOp] = [
        Rect(0, g.footer_top, g.width, band, fill=Colors.LIGHT_GRAY, style="footer"),
        Rule(0, g.footer_top, g.width, Colors.BORDER),
        Text(g.width / 2, g.footer_top + 4.5, FOOTER_DISCLAIMER, 6.5, Colors.MUTED_TEXT,
             align="center", style="disclaimer"),
        Text(g.width - g.margin, g.footer_top + 9, f"Page {page_number} of {page_count}",
             6.5, Colors.MUTED_TEXT, align="right", style="page-count"),
    ]
    if attribution:
        ops.append(
            Text(g.margin, g.footer_top + 9, attribution, 6.5, Colors.MUTED_TEXT,
                 style="attribution")
        )
    return ops


# =============================================================================
# Rendering
# =============================================================================

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
<style>
@page { size: {{ width }}mm {{ height }}mm; margin: 0; }
html, body { margin: 0; padding: 0; }
body { font-family: Helvetica, Arial, 'DejaVu Sans', sans-serif; }
.page { position: relative; width: {{ width }}mm; height: {{ height }}mm;
        overflow: hidden; page-break-after: always; }
.page:last-child { page-break-after: auto; }
.op { position: absolute; box-sizing: border-box; }
.text { white-space: pre; line-height: 1; }
</style>
</head>
<body>
{% for page in pages %}
<section class="page" data-page="{{ page.number }}">
{% for el in page.elements %}<div class="op {{ el.cls }}" style="{{ el.css }}">{{ el.text }}</div>
{% endfor %}</section>
{% endfor %}
</body>
</html>
"""


def _mm(value: float) -> str:
    return f"{value:.2f}mm"


def _rgb(color) -> str:
    return "rgb({}, {}, {})".format(*color)


def _element(op: DrawOp, geometry: PageGeometry) -> dict:
    """CSS box for one draw op."""
    if isinstance(op, Text):
        size_mm = op.size * PT_TO_MM
        css = [
            f"top: {_mm(op.y - size_mm * 0.8)}",
            f"font-size: {op.size}pt",
            f"color: {_rgb(op.color)}",
        ]
        if op.bold:
            css.append("font-weight: bold")
        if op.align == "right":
            css.append(f"right: {_mm(geometry.width - op.x)}")
        elif op.align == "center":
            css += [f"left: {_mm(op.x)}", "transform: translateX(-50%)"]
        else:
            css.append(f"left: {_mm(op.x)}")
        return {"cls": f"text {op.style}".strip(), "css": "; ".join(css), "text": op.text}

    if isinstance(op, Rect):
        css = [f"left: {_mm(op.x)}", f"top: {_mm(op.y)}",
               f"width: {_mm(op.w)}", f"height: {_mm(op.h)}"]
        if op.fill:
            css.append(f"background: {_rgb(op.fill)}")
        if op.stroke:
            css.append(f"border: 0.3mm solid {_rgb(op.stroke)}")
        if op.radius:
            css.append(f"border-radius: {_mm(op.radius)}")
        return {"cls": f"rect {op.style}".strip(), "css": "; ".join(css), "text": ""}

    if isinstance(op, Rule):
        css = [f"left: {_mm(op.x)}", f"top: {_mm(op.y)}", f"width: {_mm(op.w)}",
               f"border-top: {_mm(op.thickness)} solid {_rgb(op.color)}"]
        return {"cls": "rule", "css": "; ".join(css), "text": ""}

    css = [f"left: {_mm(op.cx - op.r)}", f"top: {_mm(op.cy - op.r)}",
           f"width: {_mm(2 * op.r)}", f"height: {_mm(2 * op.r)}",
           "border-radius: 50%", f"background: {_rgb(op.fill)}"]
    return {"cls": "circle", "css": "; ".join(css), "text": ""}


@dataclass(frozen=True)
class ReportArtifact:
    """Rendered report ready for download."""
    filename: str
    content: bytes
    media_type: str
    document: Document


class ReportGenerator:
    """
    Builds and renders achalasia diagnostic reports.

    ``build`` runs the two layout passes and returns the page model;
    ``generate`` renders it to PDF (or HTML when WeasyPrint is unavailable).
    """

    def __init__(
        self,
        geometry: Optional[PageGeometry] = None,
        attribution: Optional[str] = None
    ):
        self.geometry = geometry or PageGeometry()
        self.attribution = settings.report_attribution if attribution is None else attribution
        self._env = Environment(autoescape=select_autoescape(default=True))
        self._template = self._env.from_string(PAGE_TEMPLATE)

    def build(
        self,
        analysis: AnalysisResult,
        file_name: str,
        generated_at: Optional[datetime] = None
    ) -> Document:
        """
        Lay out an analysis and stamp page footers.

        Args:
            analysis: Result to render
            file_name: Original image file name shown in the report
            generated_at: Report timestamp (defaults to now)

        Returns:
            Finalized Document
        """
        generated_at = generated_at or datetime.now()
        layout = ReportLayout(
            analysis,
            file_name,
            make_report_id(generated_at),
            generated_at,
            self.geometry,
        )
        document = layout.run()
        return finalize_chrome(document, self._stamp_footer)

    def _stamp_footer(
        self,
        page_number: int,
        page_count: int,
        geometry: PageGeometry
    ) -> Iterable[DrawOp]:
        return footer_ops(page_number, page_count, geometry, self.attribution)

    def render_html(self, document: Document, title: str = "Achalasia Diagnostic Report") -> str:
        """Render a finalized document as absolutely-positioned HTML pages."""
        pages = [
            {
                "number": page.number,
                "elements": [_element(op, document.geometry) for op in page.ops],
            }
            for page in document.pages
        ]
        return self._template.render(
            title=title,
            width=document.geometry.width,
            height=document.geometry.height,
            pages=pages,
        )

    def generate(
        self,
        analysis: AnalysisResult,
        file_name: str,
        generated_at: Optional[datetime] = None
    ) -> ReportArtifact:
        """
        Build and render a report.

        Returns:
            ReportArtifact with the PDF bytes (HTML if WeasyPrint unavailable)
        """
        generated_at = generated_at or datetime.now()
        document = self.build(analysis, file_name, generated_at)
        html_content = self.render_html(document)

        if not WEASYPRINT_AVAILABLE:
            logger.warning("WeasyPrint not available, generating HTML instead")
            return ReportArtifact(
                filename=report_filename(file_name, generated_at, "html"),
                content=html_content.encode("utf-8"),
                media_type="text/html",
                document=document,
            )

        pdf_bytes = HTML(string=html_content).write_pdf()
        filename = report_filename(file_name, generated_at)

        logger.info(
            "PDF report generated",
            filename=filename,
            pages=document.page_count,
            diagnosis=analysis.diagnosis.value,
        )
        return ReportArtifact(
            filename=filename,
            content=pdf_bytes,
            media_type="application/pdf",
            document=document,
        )


# Lazy-loaded singleton
_report_generator: Optional[ReportGenerator] = None


def get_report_generator() -> ReportGenerator:
    """Get or create report generator singleton."""
    global _report_generator
    if _report_generator is None:
        _report_generator = ReportGenerator()
    return _report_generator

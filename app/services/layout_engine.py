"""
Pagination layout engine.

Flows content top-to-bottom over fixed-size pages. A LayoutSession owns
the vertical cursor and the pages built so far; every block asks the
session to ``reserve`` its height first, which starts a new page when the
block would cross the content bottom. Page chrome that depends on the
final page count is stamped afterwards by ``finalize_chrome``.

All coordinates are millimetres from the top-left corner of the page.
"""

import textwrap
from dataclasses import dataclass, field, replace
from typing import Callable, ClassVar, Iterable, Optional, Sequence, Tuple, Union

from app.services.presentation import RGB

PT_TO_MM = 25.4 / 72
# Average Helvetica advance width, in em
AVG_GLYPH_EM = 0.5


# =============================================================================
# Geometry
# =============================================================================

@dataclass(frozen=True)
class PageGeometry:
    """Fixed page canvas. Defaults are A4 portrait."""

    width: float = 210.0
    height: float = 297.0
    margin: float = 18.0
    first_header_height: float = 45.0
    first_content_top: float = 52.0
    continuation_header_height: float = 14.0
    content_top: float = 20.0
    content_bottom: float = 270.0
    footer_top: float = 285.0

    @property
    def content_width(self) -> float:
        return self.width - 2 * self.margin

    @property
    def usable_height(self) -> float:
        """Content height of a continuation page."""
        return self.content_bottom - self.content_top


# =============================================================================
# Draw operations
# =============================================================================

@dataclass(frozen=True)
class Rect:
    kind: ClassVar[str] = "rect"
    x: float
    y: float
    w: float
    h: float
    fill: Optional[RGB] = None
    stroke: Optional[RGB] = None
    radius: float = 0.0
    style: str = ""


@dataclass(frozen=True)
class Text:
    """Single line of text; ``y`` is the baseline."""
    kind: ClassVar[str] = "text"
    x: float
    y: float
    text: str
    size: float
    color: RGB
    bold: bool = False
    align: str = "left"
    style: str = ""


@dataclass(frozen=True)
class Rule:
    """Horizontal line."""
    kind: ClassVar[str] = "rule"
    x: float
    y: float
    w: float
    color: RGB
    thickness: float = 0.3


@dataclass(frozen=True)
class Circle:
    kind: ClassVar[str] = "circle"
    cx: float
    cy: float
    r: float
    fill: RGB


DrawOp = Union[Rect, Text, Rule, Circle]


# =============================================================================
# Document model
# =============================================================================

@dataclass(frozen=True)
class Page:
    number: int
    ops: Tuple[DrawOp, ...] = ()

    def styled(self, style: str) -> list[DrawOp]:
        """Ops tagged with the given style."""
        return [op for op in self.ops if getattr(op, "style", "") == style]

    def texts(self) -> list[str]:
        return [op.text for op in self.ops if isinstance(op, Text)]


@dataclass(frozen=True)
class Placement:
    """Where a content block landed."""
    section: str
    page: int
    top: float
    height: float
    atomic: bool = False

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class Document:
    pages: Tuple[Page, ...]
    placements: Tuple[Placement, ...]
    geometry: PageGeometry = field(default_factory=PageGeometry)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def section_order(self) -> list[str]:
        """Sections in the order they first appear."""
        return list(dict.fromkeys(p.section for p in self.placements))

    def pages_of(self, section: str) -> list[int]:
        """Pages a section occupies, ascending."""
        return sorted({p.page for p in self.placements if p.section == section})

    def placements_of(self, section: str) -> list[Placement]:
        return [p for p in self.placements if p.section == section]

    def section_pages(self) -> dict[str, list[int]]:
        return {name: self.pages_of(name) for name in self.section_order()}


# =============================================================================
# Text measurement
# =============================================================================

def glyph_width(size: float) -> float:
    """Average glyph advance in mm for a font size in points."""
    return size * PT_TO_MM * AVG_GLYPH_EM


def wrap_text(text: str, width: float, size: float) -> list[str]:
    """
    Split text into lines no wider than ``width`` mm.

    Explicit newlines are kept, words longer than a line are broken.
    Always returns at least one line.
    """
    per_line = max(1, int(width / glyph_width(size)))
    lines: list[str] = []
    for paragraph in (text or "").splitlines() or [""]:
        lines.extend(textwrap.wrap(paragraph, per_line) or [""])
    return lines


def fit_line(text: str, width: float, size: float) -> str:
    """Truncate text to one line, marking the cut with an ellipsis."""
    per_line = max(1, int(width / glyph_width(size)))
    if len(text) <= per_line:
        return text
    return text[:max(1, per_line - 3)].rstrip() + "..."


# =============================================================================
# Layout session
# =============================================================================

PageHook = Callable[["LayoutSession"], None]


class LayoutSession:
    """
    Cursor and page state for one document build.

    Args:
        geometry: Page canvas
        page_header: Called right after each continuation page is started,
            to draw its header band
    """

    def __init__(
        self,
        geometry: Optional[PageGeometry] = None,
        page_header: Optional[PageHook] = None
    ):
        self.geometry = geometry or PageGeometry()
        self._page_header = page_header
        self._pages: list[list[DrawOp]] = [[]]
        self._placements: list[Placement] = []
        self.page = 1
        self.y = self.geometry.first_content_top
        self._page_top = self.y

    @property
    def at_page_top(self) -> bool:
        """Nothing has been laid out below the header of the current page."""
        return self.y <= self._page_top

    def new_page(self) -> None:
        self._pages.append([])
        self.page += 1
        self.y = self.geometry.content_top
        self._page_top = self.y
        if self._page_header is not None:
            self._page_header(self)

    def reserve(self, height: float) -> bool:
        """
        Make room for a block of ``height`` mm.

        Breaks to a new page when the block would cross the content bottom,
        unless the current page is still empty; an oversized block is then
        placed at the top of the fresh page as-is.

        Returns:
            True if a page break happened
        """
        if self.y + height > self.geometry.content_bottom and not self.at_page_top:
            self.new_page()
            return True
        return False

    def claim(self, section: str, height: float, atomic: bool = False) -> float:
        """Reserve a block, record its placement and return its top."""
        self.reserve(height)
        return self.claim_here(section, height, atomic)

    def claim_here(self, section: str, height: float, atomic: bool = False) -> float:
        """Record a block at the cursor without a page-break check."""
        self._placements.append(
            Placement(section=section, page=self.page, top=self.y,
                      height=height, atomic=atomic)
        )
        return self.y

    def advance(self, distance: float) -> None:
        self.y += distance

    def draw(self, *ops: DrawOp) -> None:
        self._pages[-1].extend(ops)

    def document(self) -> Document:
        pages = tuple(
            Page(number=i, ops=tuple(ops))
            for i, ops in enumerate(self._pages, start=1)
        )
        return Document(
            pages=pages,
            placements=tuple(self._placements),
            geometry=self.geometry,
        )


ChromeStamp = Callable[[int, int, PageGeometry], Iterable[DrawOp]]


def finalize_chrome(document: Document, stamp: ChromeStamp) -> Document:
    """
    Second pass: add per-page chrome that needs the total page count.

    Args:
        document: Laid-out document
        stamp: Called as ``stamp(page_number, page_count, geometry)``

    Returns:
        New document with the stamped ops appended to every page
    """
    total = document.page_count
    pages = tuple(
        replace(page, ops=page.ops + tuple(stamp(page.number, total, document.geometry)))
        for page in document.pages
    )
    return replace(document, pages=pages)


def draw_lines(
    session: LayoutSession,
    lines: Sequence[str],
    x: float,
    baseline: float,
    size: float,
    color: RGB,
    leading: float = 4.0,
    style: str = ""
) -> None:
    """Draw pre-wrapped lines starting at ``baseline``."""
    session.draw(*(
        Text(x=x, y=baseline + i * leading, text=line, size=size, color=color, style=style)
        for i, line in enumerate(lines)
    ))

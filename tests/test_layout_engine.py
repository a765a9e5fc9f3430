"""
Tests for the pagination layout engine primitives.
"""

from app.services.layout_engine import (
    Document,
    LayoutSession,
    PageGeometry,
    Rect,
    Text,
    finalize_chrome,
    fit_line,
    glyph_width,
    wrap_text,
)
from app.services.presentation import Colors


class TestWrapText:
    """Line wrapping by average glyph width."""

    def test_short_text_single_line(self):
        assert wrap_text("Bird's beak", 93, 7) == ["Bird's beak"]

    def test_lines_fit_width(self):
        text = "retained food and fluid within a dilated esophageal body " * 6
        width = 40
        per_line = int(width / glyph_width(7))
        lines = wrap_text(text, width, 7)
        assert len(lines) > 1
        assert all(len(line) <= per_line for line in lines)

    def test_long_word_is_broken(self):
        lines = wrap_text("x" * 200, 40, 7)
        assert len(lines) > 1
        assert "".join(lines) == "x" * 200

    def test_empty_text_has_one_line(self):
        assert wrap_text("", 40, 7) == [""]

    def test_newlines_are_kept(self):
        assert wrap_text("first\nsecond", 100, 7) == ["first", "second"]

    def test_fit_line_truncates(self):
        line = fit_line("a" * 500, 50, 7.5)
        assert line.endswith("...")
        assert len(line) <= int(50 / glyph_width(7.5))
        assert fit_line("short", 50, 7.5) == "short"


class TestLayoutSession:
    """Cursor, reserve and page breaks."""

    def test_starts_on_first_page(self):
        session = LayoutSession()
        assert session.page == 1
        assert session.y == session.geometry.first_content_top
        assert session.at_page_top

    def test_reserve_without_overflow(self):
        session = LayoutSession()
        session.advance(10)
        assert session.reserve(20) is False
        assert session.page == 1

    def test_reserve_breaks_page(self):
        g = PageGeometry()
        headers = []
        session = LayoutSession(g, page_header=lambda s: headers.append(s.page))
        session.advance(g.content_bottom - session.y - 5)

        assert session.reserve(10) is True
        assert session.page == 2
        assert session.y == g.content_top
        assert headers == [2]

    def test_block_fitting_exactly_stays(self):
        g = PageGeometry()
        session = LayoutSession(g)
        session.advance(10)
        assert session.reserve(g.content_bottom - session.y) is False

    def test_oversized_block_on_fresh_page_does_not_loop(self):
        g = PageGeometry()
        session = LayoutSession(g)
        session.advance(30)

        assert session.reserve(g.usable_height * 3) is True
        assert session.page == 2
        # Already at the top of a fresh page: no further break
        assert session.reserve(g.usable_height * 3) is False
        assert session.page == 2

    def test_claim_records_placement(self):
        session = LayoutSession()
        top = session.claim("notes", 30, atomic=True)
        session.advance(30)
        doc = session.document()

        assert doc.placements[0].section == "notes"
        assert doc.placements[0].top == top
        assert doc.placements[0].atomic
        assert doc.placements[0].bottom == top + 30

    def test_draw_goes_to_current_page(self):
        session = LayoutSession()
        session.draw(Rect(0, 0, 10, 10, fill=Colors.NAVY))
        session.new_page()
        session.draw(Text(0, 10, "second", 8, Colors.TEXT))
        doc = session.document()

        assert doc.page_count == 2
        assert len(doc.pages[0].ops) == 1
        assert doc.pages[1].texts() == ["second"]

    def test_sessions_do_not_share_state(self):
        first = LayoutSession()
        first.new_page()
        first.claim("x", 5)
        second = LayoutSession()

        assert second.page == 1
        assert second.document().placements == ()


class TestFinalizeChrome:
    """Second pass stamping."""

    def test_stamps_every_page_with_total(self):
        session = LayoutSession()
        session.new_page()
        session.new_page()
        doc = session.document()

        stamped = finalize_chrome(
            doc,
            lambda n, total, g: [Text(0, g.footer_top, f"{n}/{total}", 6, Colors.MUTED_TEXT)],
        )
        assert [p.texts() for p in stamped.pages] == [["1/3"], ["2/3"], ["3/3"]]

    def test_original_document_untouched(self):
        doc = LayoutSession().document()
        stamped = finalize_chrome(doc, lambda n, t, g: [Rect(0, 0, 1, 1)])

        assert isinstance(stamped, Document)
        assert doc.pages[0].ops == ()
        assert len(stamped.pages[0].ops) == 1

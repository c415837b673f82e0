"""
Tests for the text sanitizer and candidate classification.
"""

from __future__ import annotations

import pytest

from pdfscan.sanitizer import (
    deduplicate_lines,
    filter_tool_noise,
    is_garbled,
    is_metadata_line,
    is_only_metadata,
    is_similar,
    normalize_whitespace,
    remove_near_duplicates,
    sanitize,
    strip_pdf_tokens,
)


# ═══════════════════════════════════════════════════════════════════════════════
# CLEANING STEPS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSanitize:
    """Test the full cleaning pipeline."""

    def test_clean_text_unchanged(self):
        assert sanitize("Hello World") == "Hello World"

    def test_empty(self):
        assert sanitize("") == ""

    def test_object_references_and_keywords_removed(self):
        assert sanitize("Wall section 12 0 R endobj detail") == "Wall section detail"

    def test_cad_noise_removed(self):
        assert sanitize("AutoCAD SHX Text Muro pantalla") == "Muro pantalla"

    def test_pdf_dates_removed(self):
        assert sanitize("Fecha D:20240115093000 revisada") == "Fecha revisada"

    def test_layer_codes_removed(self):
        assert sanitize("Eje 12_COTAS principal") == "Eje principal"

    def test_foreign_characters_removed(self):
        assert sanitize("Texto中文 limpio") == "Texto limpio"

    def test_latin_letters_kept(self):
        assert sanitize("Excavación del túnel") == "Excavación del túnel"

    def test_control_characters_blanked(self):
        assert sanitize("Panel\x00\x07 norte") == "Panel norte"

    def test_crlf_normalized(self):
        assert sanitize("Primera linea\r\nSegunda linea\rTercera linea") == (
            "Primera linea\nSegunda linea\nTercera linea"
        )

    def test_duplicate_lines_removed(self):
        assert sanitize("Linea uno\nlinea  UNO\nLinea dos") == "Linea uno\nLinea dos"

    def test_stuttered_words_collapsed(self):
        assert sanitize("muro muro muro muro lateral") == "muro lateral"

    def test_hex_blobs_removed(self):
        assert strip_pdf_tokens("Ref deadbeef01 ok").split() == ["Ref", "ok"]

    def test_adobe_and_ucs_markers(self):
        assert filter_tool_noise("Plano (Adobe PDF Library) (UCS World) final") == (
            "Plano   final"
        )


class TestWhitespaceAndDedup:
    """Test whitespace normalization and line de-duplication."""

    def test_at_most_one_blank_line(self):
        assert normalize_whitespace("Alpha\n\n\n\nBeta") == "Alpha\n\nBeta"

    def test_spaces_collapsed_and_trimmed(self):
        assert normalize_whitespace("  Alpha    beta \n  gamma  ") == "Alpha beta\ngamma"

    def test_dedup_keeps_paragraph_breaks(self):
        text = "Alpha line\n\n\nBeta line\nalpha line\n\nGamma line"
        assert deduplicate_lines(text) == "Alpha line\n\nBeta line\n\nGamma line"

    def test_dedup_drops_short_and_letterless_lines(self):
        assert deduplicate_lines("abc\n12345\nValid line") == "Valid line"

    @pytest.mark.parametrize("text", [
        "Alpha line\n\n\nBeta line\nalpha line\n\nGamma line",
        "One\nTwo two two\n\n\nThree three\nthree  three",
        "",
    ])
    def test_dedup_is_idempotent(self, text):
        once = deduplicate_lines(text)
        assert deduplicate_lines(once) == once


class TestNearDuplicates:
    """Test sentence-level near-duplicate removal."""

    def test_similar_sentences(self):
        assert is_similar(
            "excavation depth report approved",
            "excavation depth report approved today",
        )

    def test_different_sentences(self):
        assert not is_similar("excavation depth report", "panel ring sector north")

    def test_word_count_gap_too_large(self):
        assert not is_similar(
            "excavation depth",
            "excavation depth report approved today again",
        )

    def test_remove_near_duplicates(self):
        text = (
            "Excavation depth report approved\n"
            "Excavation depth report approved today\n"
            "Something different entirely"
        )
        assert remove_near_duplicates(text) == (
            "Excavation depth report approved\nSomething different entirely"
        )

    def test_remove_near_duplicates_is_idempotent(self):
        text = (
            "Ring one installed. Ring one installed today! "
            "Sector two pending? Sector two pending."
        )
        once = remove_near_duplicates(text)
        assert remove_near_duplicates(once) == once


# ═══════════════════════════════════════════════════════════════════════════════
# CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════


class TestIsGarbled:
    """Test garbled-text detection."""

    @pytest.mark.parametrize("text", ["", "   ", "12345 678", "2024\n15"])
    def test_empty_or_digits_only(self, text):
        assert is_garbled(text) is True

    def test_repeated_character_run(self):
        assert is_garbled("Plan aaaaaaaaaaaa final") is True

    def test_mostly_foreign_characters(self):
        assert is_garbled("中文中文中ab") is True

    def test_readable_text(self):
        assert is_garbled("Hello World") is False

    def test_latin_text(self):
        assert is_garbled("Excavación del túnel") is False


class TestMetadataDetection:
    """Test PDF-structure detection."""

    def test_mostly_metadata(self):
        text = "MediaBox 0 0 612 792\nResources ExtGState\nProcSet Text\nReal text"
        assert is_only_metadata(text) is True

    def test_prose(self):
        assert is_only_metadata("Hello\nWorld") is False

    def test_no_lines(self):
        assert is_only_metadata("") is False

    @pytest.mark.parametrize("line", [
        "%PDF-1.7",
        "%%EOF",
        "<< /Type /Page >>",
        "/Producer (Acme)",
        "12 0 obj",
        "0000000017 00000 n",
        "startxref",
        "Linearized 1",
    ])
    def test_metadata_line_shapes(self, line):
        assert is_metadata_line(line) is True

    def test_prose_line(self):
        assert is_metadata_line("Project excavation notes") is False

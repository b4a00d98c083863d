"""Tests for formatting.py - Line numbering of emitted text."""

from serpent.src.emission.formatting import add_line_numbers, line_number_width


def test_line_numbers_are_right_aligned():
    """Test numbers share one width across the whole text."""
    text = "\n".join(f"line {i}" for i in range(1, 11)) + "\n"
    numbered = add_line_numbers(text).splitlines()

    assert numbered[0] == " 1 line 1"
    assert numbered[9] == "10 line 10"


def test_trailing_newline_is_kept():
    """Test the final newline survives numbering."""
    assert add_line_numbers("a\nb\n") == "1 a\n2 b\n"
    assert add_line_numbers("a\nb") == "1 a\n2 b"


def test_empty_text():
    """Test empty text stays empty."""
    assert add_line_numbers("") == ""


def test_width():
    """Test the width follows the digit count."""
    assert line_number_width(0) == 1
    assert line_number_width(9) == 1
    assert line_number_width(10) == 2
    assert line_number_width(1000) == 4

"""Tests for comment stripping and model file lookup (dsgec.io.source)."""

from __future__ import annotations

import pytest

from dsgec.errors import ParseError
from dsgec.io.source import SourceLine, lines_from_text, read_model_file, resolve_model_file


class TestComments:
    def test_line_and_block_comments(self) -> None:
        text = "model\n  y = 1; // note\n% full line\n/* block\n still */ x = 2;\n"
        lines = lines_from_text(text, "m.rs")
        assert [(l.code, l.line) for l in lines] == [("model", 1), ("y = 1;", 2), ("x = 2;", 5)]
        assert all(l.filename == "m.rs" for l in lines)

    def test_comment_markers_inside_strings_are_kept(self) -> None:
        (line,) = lines_from_text('endogenous y "100%y"')
        assert line.code == 'endogenous y "100%y"'

    def test_unterminated_block_comment(self) -> None:
        with pytest.raises(ParseError, match="unterminated"):
            lines_from_text("model\n/* never closed\n")

    def test_error_location(self) -> None:
        err = SourceLine("y = ;", "m.rs", 3).error("bad statement")
        assert str(err) == "m.rs:3: bad statement"
        assert err.line == 3


class TestModelFile:
    def test_stem_is_resolved_with_extension(self, tmp_path) -> None:
        path = tmp_path / "model.dsge"
        path.write_text("endogenous y\n")
        assert resolve_model_file(tmp_path / "model") == path

    def test_read_keeps_file_name(self, tmp_path) -> None:
        path = tmp_path / "model.rs"
        path.write_text("endogenous y\n\nexogenous e\n")
        lines = read_model_file(path)
        assert [l.line for l in lines] == [1, 3]
        assert lines[0].filename == str(path)

    def test_invalid_extension(self, tmp_path) -> None:
        path = tmp_path / "model.txt"
        path.write_text("endogenous y\n")
        with pytest.raises(ParseError, match="extension"):
            resolve_model_file(path)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            resolve_model_file(tmp_path / "absent")

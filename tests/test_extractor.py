"""Tests for comment detection and marker extraction."""

import pytest

from fossil.extractor import CommentScanner, State, build_marker_regex, extract_file, extract_markers

DEFAULT = ["TODO", "FIXME", "HACK", "XXX", "NOTE"]


def extract(text, markers=DEFAULT, context_lines=2, **kwargs):
    pattern = build_marker_regex(markers)
    return list(extract_markers(text.splitlines(), "src/a.py", pattern, context_lines, **kwargs))


class TestMarkerRegex:
    """Keyword followed by a colon or an assignee parenthesis."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            (" TODO: fix this", "TODO"),
            (" FIXME(alice): broken", "FIXME"),
            (" HACK : spaced", "HACK"),
            ("XXX:", "XXX"),
        ],
    )
    def test_matches(self, text, expected):
        m = build_marker_regex(DEFAULT).search(text)
        assert m and m.group(1) == expected

    @pytest.mark.parametrize("text", ["This is a TODO in prose", "TODOS: plural", "XXXX: four", "todo: lower", "MYTODO: x"])
    def test_rejects(self, text):
        assert build_marker_regex(DEFAULT).search(text) is None

    def test_custom_keywords(self):
        pattern = build_marker_regex(["PERF", "@todo"])
        assert pattern.search(" PERF: slow loop").group(1) == "PERF"
        assert pattern.search(" * @todo: docblock tag").group(1) == "@todo"


class TestCommentScanner:
    """The Normal / InBlockComment state machine."""

    def test_line_comment(self):
        sc = CommentScanner()
        assert sc.comment_segments("x = 1  # note") == [" note"]
        assert sc.state is State.NORMAL

    def test_block_spans_lines(self):
        sc = CommentScanner()
        sc.comment_segments("int x; /* start")
        assert sc.state is State.IN_BLOCK
        assert sc.comment_segments("still inside") == ["still inside"]
        sc.comment_segments("end */ int y;")
        assert sc.state is State.NORMAL
        assert sc.comment_segments("int z;") == []

    def test_code_after_block_then_line_comment(self):
        sc = CommentScanner()
        segments = sc.comment_segments("/* a */ call(); // b")
        assert segments == [" a ", " b"]
        assert sc.state is State.NORMAL

    def test_html_comment(self):
        sc = CommentScanner()
        sc.comment_segments("<p>text</p> <!-- open")
        assert sc.state is State.IN_BLOCK
        assert sc.comment_segments("close -->") == ["close "]
        assert sc.state is State.NORMAL

    def test_plain_code_has_no_segments(self):
        assert CommentScanner().comment_segments("TODO: not in a comment") == []


class TestExtractMarkers:
    """Marker extraction over a line stream."""

    def test_python_hash_comment(self):
        markers = extract("import os\n\n# TODO: fix\nprint(1)\n")
        assert len(markers) == 1
        m = markers[0]
        assert (m.marker_type, m.file_path, m.line_number) == ("TODO", "src/a.py", 3)
        assert m.line_content == "# TODO: fix"
        assert m.history_info is None

    def test_single_line_block_matches_line_comment(self):
        block = extract("/* HACK: temp */")
        line = extract("// HACK: temp")
        assert [(m.marker_type, m.line_number) for m in block] == [("HACK", 1)]
        assert [(m.marker_type, m.line_number) for m in line] == [("HACK", 1)]

    def test_docblock(self):
        text = "/**\n * Does things.\n * FIXME(bob): later\n */\nfunction f() {}\n"
        markers = extract(text)
        assert [(m.marker_type, m.line_number) for m in markers] == [("FIXME", 3)]

    def test_orphan_docblock_line(self):
        markers = extract("   * NOTE: continuation without opener")
        assert [m.marker_type for m in markers] == ["NOTE"]

    def test_keyword_in_code_is_ignored(self):
        assert extract("TODO: looks like a label\nx = TODO(1)\n") == []

    def test_keyword_in_prose_comment_is_ignored(self):
        assert extract("# we should TODO this someday") == []

    def test_string_literal_false_positive_is_kept(self):
        # no per-language parsing: a comment opener inside a string counts
        markers = extract('msg = "# TODO: inside a string"')
        assert [m.marker_type for m in markers] == ["TODO"]

    def test_one_marker_per_line(self):
        markers = extract("// TODO: a FIXME: b")
        assert [m.marker_type for m in markers] == ["TODO"]

    def test_multiline_block_markers(self):
        text = "/*\nHACK: first\nplain\nXXX: second\n*/\nXXX: outside\n"
        markers = extract(text)
        assert [(m.marker_type, m.line_number) for m in markers] == [("HACK", 2), ("XXX", 4)]

    def test_html_markers(self):
        text = "<div>\n<!-- NOTE: keep in sync -->\n<!--\n  TODO: translate\n-->\n</div>\n"
        markers = extract(text)
        assert [(m.marker_type, m.line_number) for m in markers] == [("NOTE", 2), ("TODO", 4)]

    def test_severity_is_carried(self):
        markers = extract("# FIXME: a\n# TODO: b\n", severity={"FIXME": "high"})
        assert [m.severity for m in markers] == ["high", None]


class TestContext:
    """Context lines before and after a marker."""

    def test_full_context(self):
        markers = extract("line 1\nline 2\n// TODO: fix\nline 4\nline 5")
        assert markers[0].context_before == ("line 1", "line 2")
        assert markers[0].context_after == ("line 4", "line 5")

    def test_clipped_at_file_edges(self):
        markers = extract("# TODO: first\nmiddle\n# FIXME: last")
        first, last = markers
        assert first.context_before == ()
        assert first.context_after == ("middle", "# FIXME: last")
        assert last.context_before == ("# TODO: first", "middle")
        assert last.context_after == ()

    def test_adjacent_markers_share_lines(self):
        markers = extract("# TODO: a\n# FIXME: b\nx = 1", context_lines=1)
        assert [m.line_number for m in markers] == [1, 2]
        assert markers[0].context_after == ("# FIXME: b",)
        assert markers[1].context_before == ("# TODO: a",)
        assert markers[1].context_after == ("x = 1",)

    def test_zero_context(self):
        markers = extract("a\n# TODO: x\nb", context_lines=0)
        assert markers[0].context_before == ()
        assert markers[0].context_after == ()

    def test_lazy_generation(self):
        pattern = build_marker_regex(DEFAULT)
        consumed = []

        def lines():
            for i, line in enumerate(["# TODO: a", "x", "y", "z", "# TODO: b"]):
                consumed.append(i)
                yield line

        gen = extract_markers(lines(), "f.py", pattern, context_lines=1)
        first = next(gen)
        assert first.line_number == 1
        assert consumed == [0, 1]


class TestExtractFile:
    """Reading markers from disk."""

    def test_crlf_and_line_numbers(self, tmp_path):
        path = tmp_path / "win.c"
        path.write_bytes(b"int a;\r\n// TODO: crlf\r\nint b;\r\n")
        markers = extract_file(str(path), "win.c", build_marker_regex(DEFAULT), 1)
        assert markers[0].line_number == 2
        assert markers[0].line_content == "// TODO: crlf"
        assert markers[0].context_after == ("int b;",)

    def test_undecodable_raises(self, tmp_path):
        path = tmp_path / "latin.txt"
        path.write_bytes(b"# TODO: ok\n\xff\xfe\n")
        with pytest.raises(UnicodeDecodeError):
            extract_file(str(path), "latin.txt", build_marker_regex(DEFAULT))

    def test_line_content_contains_marker(self, tmp_path):
        path = tmp_path / "m.js"
        path.write_text("a();\n/* XXX: one */\nb(); // NOTE(ann): two\n", encoding="utf-8")
        markers = extract_file(str(path), "m.js", build_marker_regex(DEFAULT), 2)
        lines = path.read_text(encoding="utf-8").splitlines()
        for m in markers:
            assert lines[m.line_number - 1] == m.line_content
            assert build_marker_regex([m.marker_type]).search(m.line_content)

    def test_lone_carriage_return_is_not_a_line_break(self, tmp_path):
        path = tmp_path / "mac.py"
        path.write_bytes(b"x = 1\rprint(x)\n# TODO: fix\n")
        (m,) = extract_file(str(path), "mac.py", build_marker_regex(DEFAULT), 1)
        assert m.line_number == 2
        assert m.context_before == ("x = 1\rprint(x)",)

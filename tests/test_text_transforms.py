"""Tests for the pure text transforms behind every mutation."""

import re

import pytest

from weaver.mutation import (
    HASH_COMMENT,
    SLASH_COMMENT,
    XML_COMMENT,
    Anchor,
    TransformError,
    inject_guarded,
    read_block,
    replace_block,
    replace_exact,
    replace_pattern,
    strip_block,
)
from weaver.mutation.text import block_markers, insert_lines

MANIFEST = '<manifest>\n    <application android:label="Host">\n    </application>\n</manifest>\n'


class TestExactReplace:
    def test_replaces_text(self):
        assert replace_exact("minSdk 21\n", "minSdk 21", "minSdk 24") == "minSdk 24\n"

    def test_already_replaced_is_noop(self):
        assert replace_exact("minSdk 24\n", "minSdk 21", "minSdk 24") == "minSdk 24\n"

    def test_missing_text_fails(self):
        with pytest.raises(TransformError, match="not found"):
            replace_exact("targetSdk 34\n", "minSdk 21", "minSdk 24")

    def test_rejects_replacement_containing_search_text(self):
        """Replacing 'a' with 'ab' would grow on every run."""
        with pytest.raises(TransformError, match="contains the search text"):
            replace_exact("a", "a", "ab")


class TestRegexReplace:
    def test_idempotent_replacement(self):
        content = "    minSdk 21\n"
        result = replace_pattern(content, r"^(\s*minSdk )\d+", r"\g<1>24")
        assert result == "    minSdk 24\n"
        assert replace_pattern(result, r"^(\s*minSdk )\d+", r"\g<1>24") == result

    def test_non_idempotent_replacement_fails(self):
        with pytest.raises(TransformError, match="not idempotent"):
            replace_pattern("version 1\n", r"version (\d+)", r"version \g<1>0")

    def test_callable_replacement(self):
        result = replace_pattern("minSdk 21", re.compile(r"(\d+)"), lambda m: str(max(int(m.group(1)), 24)))
        assert result == "minSdk 24"

    def test_missing_pattern(self):
        with pytest.raises(TransformError, match="pattern not found"):
            replace_pattern("nothing here", r"minSdk \d+", "minSdk 24")
        assert replace_pattern("nothing here", r"minSdk \d+", "minSdk 24", required=False) == "nothing here"


class TestMarkerBlocks:
    """Marker-delimited block replace."""

    BLOCK = '    <uses-permission android:name="android.permission.CAMERA" />'

    def _insert(self, content, block):
        return replace_block(
            content, "permissions", block, XML_COMMENT, anchor=Anchor("<application", before=True), indent="    "
        )

    def test_markers_use_file_comment_style(self):
        assert block_markers("deps", XML_COMMENT) == ("<!-- weaver:begin deps -->", "<!-- weaver:end deps -->")
        assert block_markers("deps", SLASH_COMMENT) == ("// weaver:begin deps", "// weaver:end deps")
        assert block_markers("deps", HASH_COMMENT) == ("# weaver:begin deps", "# weaver:end deps")

    def test_invalid_section_name(self):
        with pytest.raises(TransformError, match="invalid section"):
            block_markers("two words", XML_COMMENT)

    def test_inserts_block_at_anchor(self):
        result = self._insert(MANIFEST, self.BLOCK)
        assert result == (
            "<manifest>\n"
            "    <!-- weaver:begin permissions -->\n"
            f"{self.BLOCK}\n"
            "    <!-- weaver:end permissions -->\n"
            '    <application android:label="Host">\n'
            "    </application>\n"
            "</manifest>\n"
        )

    def test_replace_is_idempotent(self):
        once = self._insert(MANIFEST, self.BLOCK)
        assert self._insert(once, self.BLOCK) == once

    def test_read_block_returns_exact_block(self):
        block = self.BLOCK + '\n    <uses-permission android:name="android.permission.RECORD_AUDIO" />'
        result = self._insert(self._insert(MANIFEST, self.BLOCK), block)
        assert read_block(result, "permissions", XML_COMMENT) == block

    def test_read_block_keeps_trailing_blank_lines(self):
        block = self.BLOCK + "\n\n"
        inserted = self._insert(MANIFEST, block)
        replaced = self._insert(self._insert(MANIFEST, self.BLOCK), block)

        assert read_block(inserted, "permissions", XML_COMMENT) == block
        assert read_block(replaced, "permissions", XML_COMMENT) == block
        assert self._insert(inserted, block) == inserted

    def test_content_outside_markers_untouched(self):
        """Everything outside the markers stays byte-identical across replaces."""
        host = MANIFEST.replace("<manifest>", "<manifest>\n  <!-- host comment -->  ")
        first = self._insert(host, self.BLOCK)
        second = self._insert(first, "    <uses-permission android:name=\"x\" />")

        def outside(text):
            begin = text.index("<!-- weaver:begin permissions -->")
            end = text.index("<!-- weaver:end permissions -->")
            return text[:begin], text[end:]

        assert outside(first) == outside(second)
        assert strip_block(second, "permissions", XML_COMMENT) == host

    def test_empty_block_for_absent_section_is_noop(self):
        assert self._insert(MANIFEST, "") == MANIFEST

    def test_empty_block_clears_existing_section(self):
        result = self._insert(self._insert(MANIFEST, self.BLOCK), "")
        assert read_block(result, "permissions", XML_COMMENT) == ""
        assert "<!-- weaver:begin permissions -->" in result

    def test_appends_at_end_without_anchor(self):
        result = replace_block("android {\n}", "plugin-sources", "srcDirs += ['x']", SLASH_COMMENT)
        assert result == "android {\n}\n// weaver:begin plugin-sources\nsrcDirs += ['x']\n// weaver:end plugin-sources\n"

    def test_missing_anchor_fails(self):
        with pytest.raises(TransformError, match="anchor not found"):
            replace_block("<manifest/>", "permissions", self.BLOCK, XML_COMMENT, anchor=Anchor("<application"))

    def test_duplicate_markers_fail(self):
        once = self._insert(MANIFEST, self.BLOCK)
        begin = "    <!-- weaver:begin permissions -->\n"
        doubled = once.replace(begin, begin + begin)
        with pytest.raises(TransformError, match="expected one pair"):
            self._insert(doubled, self.BLOCK)

    def test_unpaired_marker_fails(self):
        once = self._insert(MANIFEST, self.BLOCK)
        broken = once.replace("    <!-- weaver:end permissions -->\n", "")
        with pytest.raises(TransformError):
            read_block(broken, "permissions", XML_COMMENT)

    def test_out_of_order_markers_fail(self):
        content = "# weaver:end pods\n# weaver:begin pods\n"
        with pytest.raises(TransformError, match="precedes"):
            replace_block(content, "pods", "pod 'A'", HASH_COMMENT)

    def test_marker_text_inside_line_is_not_a_marker(self):
        """Only markers on their own line delimit a section."""
        content = 'x = "# weaver:begin pods"\n'
        assert read_block(content, "pods", HASH_COMMENT) is None


class TestGuardedInjection:
    ANCHOR = Anchor(re.compile(r"^dependencies\s*\{", re.MULTILINE))
    GRADLE = "dependencies {\n    implementation 'a:b:1'\n}\n"

    def test_triple_injection_adds_fragment_once(self):
        line = "    implementation 'c:d:2'"
        content = self.GRADLE
        for _ in range(3):
            content = inject_guarded(content, line, self.ANCHOR)
        assert content.count("c:d:2") == 1
        assert content == "dependencies {\n    implementation 'c:d:2'\n    implementation 'a:b:1'\n}\n"

    def test_guard_regex(self):
        guard = re.compile(r"['\"]a:b(:[^'\"]*)?['\"]")
        assert inject_guarded(self.GRADLE, "    implementation 'a:b:2'", self.ANCHOR, guard=guard) == self.GRADLE

    def test_missing_anchor_fails(self):
        with pytest.raises(TransformError, match="anchor not found"):
            inject_guarded("android {}\n", "    implementation 'c:d:2'", self.ANCHOR)

    def test_insert_before_last_occurrence(self):
        content = "<dict>\n<dict>\n</dict>\n</dict>\n"
        result = insert_lines(content, Anchor("</dict>", before=True, last=True), "<key>A</key>")
        assert result == "<dict>\n<dict>\n</dict>\n<key>A</key>\n</dict>\n"

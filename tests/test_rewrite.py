"""Tests for ordered rewrite rules."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from export_repair.rewrite import RewriteRule, apply_rules, load_rules


@pytest.fixture
def site(export_root: Path) -> Path:
    (export_root / "index.html").write_text(
        '<link href="/files/theme/main.css?1"><img src="/uploads/a.png">',
        encoding="utf-8",
    )
    (export_root / "files").mkdir()
    (export_root / "files" / "main_style.css").write_text(
        "url(/uploads/bg.jpg)", encoding="utf-8"
    )
    return export_root


class TestApplyRules:
    def test_rules_apply_to_selected_files(self, site: Path) -> None:
        rules = [RewriteRule(r'"/uploads/', '"uploads/', "*.html")]

        summary = apply_rules(site, rules)

        assert summary.substitutions == [1]
        assert (site / "index.html").read_text(encoding="utf-8").endswith(
            '<img src="uploads/a.png">'
        )
        assert (site / "files" / "main_style.css").read_text(
            encoding="utf-8"
        ) == "url(/uploads/bg.jpg)"

    def test_rules_apply_in_declared_order(self, site: Path) -> None:
        rules = [
            RewriteRule(r"/files/theme/", "files/theme/", "*.html"),
            RewriteRule(r'"files/theme/([^"?]+)\?\d+"', r'"files/theme/\1"', "*.html"),
        ]

        summary = apply_rules(site, rules)

        assert summary.substitutions == [1, 1]
        assert '<link href="files/theme/main.css">' in (site / "index.html").read_text(
            encoding="utf-8"
        )

    def test_reverse_order_differs(self, site: Path) -> None:
        rules = [
            RewriteRule(r'"files/theme/([^"?]+)\?\d+"', r'"files/theme/\1"', "*.html"),
            RewriteRule(r"/files/theme/", "files/theme/", "*.html"),
        ]
        summary = apply_rules(site, rules)
        assert summary.substitutions == [0, 1]

    def test_dry_run_leaves_files(self, site: Path) -> None:
        before = (site / "files" / "main_style.css").read_bytes()
        rules = [RewriteRule(r"url\(/uploads/", "url(../uploads/", "files/*.css")]

        summary = apply_rules(site, rules, dry_run=True)

        assert summary.substitutions == [1]
        assert len(summary.files_changed) == 1
        assert (site / "files" / "main_style.css").read_bytes() == before

    def test_line_endings_preserved(self, export_root: Path) -> None:
        page = export_root / "page.html"
        page.write_bytes(b"<p>/uploads/a.png</p>\r\n<p>x</p>\r\n")
        apply_rules(export_root, [RewriteRule("/uploads/", "uploads/", "*.html")])
        assert page.read_bytes() == b"<p>uploads/a.png</p>\r\n<p>x</p>\r\n"

    def test_to_dict(self, site: Path) -> None:
        summary = apply_rules(site, [RewriteRule("/uploads/", "uploads/", "**/*")])
        assert summary.to_dict(site.resolve()) == {
            "substitutions": [2],
            "files_changed": ["files/main_style.css", "index.html"],
        }


class TestLoadRules:
    def test_object_form(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(
            json.dumps(
                {"rules": [{"pattern": "a", "replacement": "b", "applies_to": "*.html"}]}
            ),
            encoding="utf-8",
        )
        assert load_rules(path) == [RewriteRule("a", "b", "*.html")]

    def test_list_form(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(
            json.dumps([{"pattern": "a", "replacement": "", "applies_to": "*.css"}]),
            encoding="utf-8",
        )
        assert load_rules(path) == [RewriteRule("a", "", "*.css")]

    @pytest.mark.parametrize(
        "payload, message",
        [
            ("{not json", "Invalid JSON"),
            ('{"rules": 3}', "list of rules"),
            ('[{"pattern": "a", "applies_to": "*"}]', "replacement"),
            ('[{"pattern": "(", "replacement": "", "applies_to": "*"}]', "invalid pattern"),
            ('[{"pattern": "", "replacement": "", "applies_to": "*"}]', "empty"),
            ("[1]", "must be an object"),
        ],
    )
    def test_invalid(self, tmp_path: Path, payload: str, message: str) -> None:
        path = tmp_path / "rules.json"
        path.write_text(payload, encoding="utf-8")
        with pytest.raises(ValueError, match=message):
            load_rules(path)


class TestChainedRulesAndErrors:
    @pytest.fixture
    def chained(self) -> list[RewriteRule]:
        return [
            RewriteRule(r"/files/theme/", "files/theme/", "*.html"),
            RewriteRule(r'"files/theme/m\.css\?\d+"', '"files/theme/m.css"', "*.html"),
        ]

    def _page(self, root: Path) -> Path:
        page = root / "index.html"
        page.write_text('<link href="/files/theme/m.css?12">', encoding="utf-8")
        return page

    def test_dry_run_sees_earlier_rules(
        self, export_root: Path, chained: list[RewriteRule]
    ) -> None:
        page = self._page(export_root)
        dry = apply_rules(export_root, chained, dry_run=True)
        assert page.read_text(encoding="utf-8") == '<link href="/files/theme/m.css?12">'

        real = apply_rules(export_root, chained)

        assert dry.substitutions == real.substitutions == [1, 1]
        assert dry.files_changed == real.files_changed
        assert page.read_text(encoding="utf-8") == '<link href="files/theme/m.css">'

    def test_rule_reverting_change_leaves_file_unchanged(
        self, export_root: Path
    ) -> None:
        page = self._page(export_root)
        rules = [
            RewriteRule("/files/", "/assets/", "*.html"),
            RewriteRule("/assets/", "/files/", "*.html"),
        ]
        summary = apply_rules(export_root, rules)
        assert summary.substitutions == [1, 1]
        assert summary.files_changed == set()
        assert page.read_text(encoding="utf-8") == '<link href="/files/theme/m.css?12">'

    def test_bad_replacement_writes_nothing(self, export_root: Path) -> None:
        page = self._page(export_root)
        rules = [
            RewriteRule("/files/", "files/", "*.html"),
            RewriteRule("files", r"\1", "*.html"),
        ]
        with pytest.raises(ValueError, match="invalid replacement"):
            apply_rules(export_root, rules)
        assert page.read_text(encoding="utf-8") == '<link href="/files/theme/m.css?12">'

    @pytest.mark.parametrize("selector", ["/srv/*.html", "../*.html", "files/../../*.css"])
    def test_selector_outside_root_rejected(
        self, export_root: Path, selector: str
    ) -> None:
        with pytest.raises(ValueError, match="applies_to"):
            apply_rules(export_root, [RewriteRule("a", "b", selector)])

    def test_load_rejects_bad_replacement(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(
            json.dumps(
                [
                    {"pattern": "/x/", "replacement": "x/", "applies_to": "*.html"},
                    {"pattern": "x", "replacement": "\\1", "applies_to": "*.html"},
                ]
            ),
            encoding="utf-8",
        )
        with pytest.raises(ValueError, match=r"Rule #1 has an invalid replacement"):
            load_rules(path)

    @pytest.mark.parametrize("selector", ["/srv/*.html", "../*.html", "C:/site/*.html"])
    def test_load_rejects_selector_outside_root(
        self, tmp_path: Path, selector: str
    ) -> None:
        path = tmp_path / "rules.json"
        path.write_text(
            json.dumps([{"pattern": "a", "replacement": "b", "applies_to": selector}]),
            encoding="utf-8",
        )
        with pytest.raises(ValueError, match="Rule #0: applies_to"):
            load_rules(path)

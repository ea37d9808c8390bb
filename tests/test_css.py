from __future__ import annotations

import json
from pathlib import Path

from portanote.config import PortanoteConfig
from portanote.html.css import (
    FileStyleSheet,
    TextStyleSheet,
    collect_css_text,
    collect_enabled_snippets,
    discover_stylesheets,
    inline_asset_urls,
    local_fetcher,
    normalize_css_for_export,
    split_css_rules,
)


def test_split_css_rules_honours_strings_and_comments() -> None:
    css = '@import url("x.css");\n/* skipped */ a { content: "}"; }\n'

    rules = split_css_rules(css)

    assert [rule.prelude for rule in rules] == ['@import url("x.css");', "a"]
    assert rules[0].block is None
    assert rules[1].block == ' content: "}"; '
    assert rules[1].selector_text == "a"


def test_platform_rules_are_replaced_with_markers() -> None:
    css = (
        "body.is-mobile .x { a: b }\n"
        "body.is-mobile-like .w { a: b }\n"
        "body:not(.is-phone) .y { c: d }\n"
        "@media (max-width: 10px) { body.is-ios p { e: f } .z { g: h } }"
    )

    result = normalize_css_for_export(css)

    assert "/* mobile rule removed */" in result
    assert "body.is-mobile-like .w { a: b }" in result
    assert "body .y { c: d }" in result
    assert ":not(" not in result
    assert "@media (max-width: 10px) {\n/* ios rule removed */\n.z { g: h }\n}" in result


def test_chained_negated_platform_selectors_collapse_to_body() -> None:
    css = (
        "body:not(.is-mobile):not(.is-ios) .x { color: red; }\n"
        "body:not(.is-tablet):not(.is-custom) .y { color: blue; }"
    )

    result = normalize_css_for_export(css)

    assert result.startswith("body .x { color: red; }")
    assert "body:not(.is-custom) .y { color: blue; }" in result
    assert ".is-ios" not in result


def test_collect_css_text_skips_excluded_and_unreadable(tmp_path: Path) -> None:
    sheets = [
        TextStyleSheet(".sfb-figlet-display.sfb-figlet-gradient pre { color: red }\np { x: y }"),
        FileStyleSheet(tmp_path / "missing.css"),
        TextStyleSheet("body.is-android h1 { z: 1 }"),
    ]

    result = collect_css_text(sheets)

    assert "sfb-figlet" not in result
    assert "p { x: y }" in result
    assert "/* android rule removed */" in result


def test_inline_asset_urls_embeds_local_fonts_and_images(tmp_path: Path) -> None:
    (tmp_path / "fonts").mkdir()
    (tmp_path / "fonts" / "a.woff2").write_bytes(b"font")
    absolute = tmp_path / "pic.png"
    absolute.write_bytes(b"font")
    css = (
        '@font-face { src: url("fonts/a.woff2") }\n'
        f".b {{ background: url('{absolute}') }}\n"
        ".c { background: url(https://example.com/y.woff) }\n"
        ".d { background: url(data:image/png;base64,AA) }\n"
        ".e { background: url(missing.png) }\n"
        ".f { background: url(notes.txt) }"
    )

    result = inline_asset_urls(css, local_fetcher(tmp_path))

    assert 'url("data:font/woff2;base64,Zm9udA==")' in result
    assert 'url("data:image/png;base64,Zm9udA==")' in result
    assert "url(https://example.com/y.woff)" in result
    assert "url(data:image/png;base64,AA)" in result
    assert "url(missing.png)" in result
    assert "url(notes.txt)" in result


def test_inline_asset_urls_without_matches_returns_input() -> None:
    css = "p { color: red }"

    assert inline_asset_urls(css) is css


def test_enabled_snippets_follow_appearance(vault, write_file) -> None:
    write_file(".obsidian/snippets/a.css", "a { x: 1 }")
    write_file(".obsidian/snippets/b.css", "b { x: 2 }")
    write_file(".obsidian/appearance.json", json.dumps({"enabledCssSnippets": ["b"]}))

    snippets = collect_enabled_snippets(vault)

    assert snippets.css_text == "b { x: 2 }"
    assert snippets.snippet_paths == (".obsidian/snippets/b.css",)


def test_all_snippets_used_when_none_enabled(vault, write_file) -> None:
    write_file(".obsidian/snippets/a.css", "a { x: 1 }")
    write_file(".obsidian/snippets/b.css", "b { x: 2 }")
    write_file(".obsidian/snippets/readme.txt", "not css")

    snippets = collect_enabled_snippets(vault)

    assert snippets.snippet_paths == (
        ".obsidian/snippets/a.css",
        ".obsidian/snippets/b.css",
    )


def test_no_snippets_folder(vault) -> None:
    snippets = collect_enabled_snippets(vault)

    assert snippets.css_text == ""
    assert snippets.snippet_paths == ()


def test_discover_stylesheets_in_cascade_order(vault, vault_root: Path, write_file) -> None:
    write_file(".obsidian/appearance.json", json.dumps({"cssTheme": "Minimal"}))
    config = PortanoteConfig(vault_dir=vault_root, stylesheets=("custom.css",))

    sheets = discover_stylesheets(vault, config)

    assert sheets[0].href == "base.css"
    assert sheets[0].rules()
    assert isinstance(sheets[1], FileStyleSheet)
    assert sheets[1].path == vault_root / ".obsidian/themes/Minimal/theme.css"
    assert sheets[2].path == vault_root / "custom.css"

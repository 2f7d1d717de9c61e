import plistlib
import sqlite3
from pathlib import Path

import pytest

from html2docset import docset
from html2docset.core import Reference
from html2docset.config import parse_config


CONFIG_YAML = """
name: "Demo Docs"
package: demo
index: "docs/index.html"
walk_root: "docs"
selectors:
  - css: "h1"
    type: "Guide"
    toc_root: true
  - css: "h2"
    type: "Section"
ignore_path_regexes:
  - "private/"
remove_elements:
  - ".ad"
css_selector_for_title: "title"
externalURL: "https://example.com/docs"
"""


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _create_docs(root: Path) -> None:
    _write(
        root / "docs" / "index.html",
        "<html><head><title>Home</title></head><body>"
        "<h1 id='welcome'>Welcome — start here</h1>"
        "<div class='ad'>Buy</div>"
        "<img src='img/logo.png'>"
        "</body></html>",
    )
    _write(
        root / "docs" / "api" / "widget.html",
        "<html><head><title>Widget</title></head><body>"
        "<h1 id='widget'>Widget</h1><h2 id='usage'>Usage</h2>"
        "</body></html>",
    )
    _write(
        root / "docs" / "api" / "widget-2.html",
        "<html><head><title>Widget</title></head><body><h2 id='more'>More usage</h2></body></html>",
    )
    _write(root / "docs" / "img" / "logo.png", "png")
    _write(root / "docs" / "css" / "site.css", "body {}")
    _write(root / "docs" / ".git" / "config", "[core]")
    _write(root / "docs" / "private" / "secret.html", "<h1>Secret</h1>")
    _write(root / "docs" / "dashing.yaml", "package: nested")


def _index_rows(out_dir: Path):
    conn = sqlite3.connect(str(out_dir / docset.INDEX_FILE))
    try:
        return list(conn.execute("SELECT name, type, path FROM searchIndex ORDER BY id"))
    finally:
        conn.close()


def test_build_docset_writes_bundle(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    _create_docs(tmp_path)
    out_dir = tmp_path / "demo.docset"

    summary = docset.build_docset(parse_config(CONFIG_YAML), out_dir)

    assert summary.pages == 3
    assert summary.references == 3
    assert summary.skipped == 0

    info = plistlib.loads((out_dir / docset.PLIST_FILE).read_bytes())
    assert info["CFBundleIdentifier"] == "demo"
    assert info["CFBundleName"] == "Demo Docs"
    assert info["DocSetPlatformFamily"] == "demo"
    assert info["isDashDocset"] is True
    assert info["DashDocSetFamily"] == "dashtoc3"
    assert info["dashIndexFilePath"] == "docs/index.html"
    assert info["isJavaScriptEnabled"] is False
    assert info["DashDocSetFallbackURL"] == "https://example.com/docs"

    assert _index_rows(out_dir) == [
        (
            "Welcome — start here",
            "Guide",
            "<dash_entry_name=Welcome — start here><dash_entry_originalName=Welcome — start here>"
            "<dash_entry_menuDescription=Home>docs/index.html#welcome",
        ),
        (
            "Widget",
            "Guide",
            "<dash_entry_name=Widget><dash_entry_originalName=Widget>"
            "<dash_entry_menuDescription=Widget>docs/api/widget.html#widget",
        ),
        (
            "Usage",
            "Section",
            "<dash_entry_name=Usage><dash_entry_originalName=Usage>"
            "<dash_entry_menuDescription=Widget>docs/api/widget.html#usage",
        ),
    ]

    documents = out_dir / docset.DOCUMENTS_DIR
    index_html = (documents / "docs" / "index.html").read_text(encoding="utf-8")
    assert "Welcome &mdash; start here" in index_html
    assert "Buy" not in index_html
    assert 'name="//ref_0/Guide/Welcome%20%E2%80%94%20start%20here/1"' in index_html

    continuation = (documents / "docs" / "api" / "widget-2.html").read_text(encoding="utf-8")
    assert 'href="//ref_1/Section/More%20usage/0"' in continuation

    assert (documents / "docs" / "css" / "site.css").read_text(encoding="utf-8") == "body {}"
    assert (documents / "docs" / "img" / "logo.png").exists()
    assert not (documents / "docs" / ".git").exists()
    assert not (documents / "docs" / "private").exists()
    assert not (documents / "docs" / "dashing.yaml").exists()


def test_resources_are_not_overwritten_but_pages_are(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    _create_docs(tmp_path)
    out_dir = tmp_path / "demo.docset"
    documents = out_dir / docset.DOCUMENTS_DIR
    _write(documents / "docs" / "css" / "site.css", "old")
    _write(documents / "docs" / "index.html", "stale")

    docset.build_docset(parse_config(CONFIG_YAML), out_dir)

    assert (documents / "docs" / "css" / "site.css").read_text(encoding="utf-8") == "old"
    assert "Welcome" in (documents / "docs" / "index.html").read_text(encoding="utf-8")


def test_rebuild_replaces_index(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    _create_docs(tmp_path)
    out_dir = tmp_path / "demo.docset"
    config = parse_config(CONFIG_YAML)

    docset.build_docset(config, out_dir)
    docset.build_docset(config, out_dir)

    assert len(_index_rows(out_dir)) == 3


def test_output_inside_walk_root_is_not_walked(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    _create_docs(tmp_path)
    config = parse_config(CONFIG_YAML.replace('walk_root: "docs"', 'walk_root: "."'))
    out_dir = tmp_path / "demo.docset"

    docset.build_docset(config, out_dir)
    summary = docset.build_docset(config, out_dir)

    assert summary.pages == 3
    assert not (out_dir / docset.DOCUMENTS_DIR / "demo.docset").exists()


def test_unreadable_page_is_skipped(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    _create_docs(tmp_path)
    out_dir = tmp_path / "demo.docset"
    config = parse_config(CONFIG_YAML)
    writer = docset.DocsetWriter(out_dir)
    summary = docset.BuildSummary()

    with docset.DocsetIndex(out_dir / docset.INDEX_FILE) as index:
        builder = docset.DocsetBuilder(config, writer, index)
        assert builder.add_page("docs/missing.html", summary) is False
        assert builder.add_page("docs/api/widget.html", summary) is True

    assert summary.references == 2


def test_index_ignores_duplicate_entries(tmp_path):
    ref = Reference(selector="h1", name="Widget", entry_type="Guide", href="a.html#w")

    with docset.DocsetIndex(tmp_path / "docSet.dsidx") as index:
        index.add(ref)
        index.add(ref)
        assert index.entries() == [("Widget", "Guide", ref.index_path)]


@pytest.mark.parametrize(
    "path, ignored",
    [
        ("docs/dashing.yaml", True),
        ("docs/.git/HEAD", True),
        ("docs/sub/.svn/entries", True),
        ("docs/private/a.html", True),
        ("docs/public/a.html", False),
    ],
)
def test_should_ignore_file(path, ignored):
    assert docset.should_ignore_file(path, parse_config(CONFIG_YAML)) is ignored


def test_copy_file_skips_existing_destination(tmp_path):
    src = _write(tmp_path / "a.txt", "new")
    dest = _write(tmp_path / "out" / "a.txt", "old")

    assert docset.copy_file(src, dest) is False
    assert dest.read_text(encoding="utf-8") == "old"
    assert docset.copy_file(src, tmp_path / "out" / "nested" / "b.txt") is True


def test_rejected_page_is_skipped_and_build_continues(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    site = tmp_path / "site"
    site.mkdir()
    (site / "a_bad.html").write_bytes(b"<html><body><![\x00</body></html>")
    _write(site / "b_good.html", "<html><body><h2 id='ok'>Works</h2></body></html>")
    config = parse_config(
        """
package: demo
walk_root: "site"
selectors:
  - css: "h2"
    type: "Section"
"""
    )
    out_dir = tmp_path / "demo.docset"

    summary = docset.build_docset(config, out_dir)

    assert summary.skipped == 1
    assert summary.pages == 1
    documents = out_dir / docset.DOCUMENTS_DIR
    assert not (documents / "site" / "a_bad.html").exists()
    assert "Works" in (documents / "site" / "b_good.html").read_text(encoding="utf-8")
    assert [row[0] for row in _index_rows(out_dir)] == ["Works"]

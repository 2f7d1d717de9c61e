"""Docset bundle writer: walker, search index, plist and file output."""

from __future__ import annotations

import logging
import os
import plistlib
import shutil
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from bs4.exceptions import ParserRejectedMarkup

from .config import DEFAULT_CONFIG_NAME, DocsetConfig
from .core import AnchorCounter, PageProcessor, Reference, is_htmlish

LOG = logging.getLogger("html2docset")

RESOURCES_DIR = "Contents/Resources"
DOCUMENTS_DIR = "Contents/Resources/Documents"
INDEX_FILE = "Contents/Resources/docSet.dsidx"
PLIST_FILE = "Contents/Info.plist"
VCS_DIRS = {".git", ".svn"}


@dataclass
class BuildSummary:
    pages: int = 0
    resources: int = 0
    references: int = 0
    skipped: int = 0


def should_ignore_file(path: str, config: DocsetConfig) -> bool:
    normalized = path.replace("\\", "/")
    if os.path.basename(normalized) == DEFAULT_CONFIG_NAME:
        return True
    for regex in config.ignore_path_regexes:
        if regex.search(normalized):
            return True
    return any(part in VCS_DIRS for part in normalized.split("/"))


def copy_file(src: Path, dest: Path) -> bool:
    """Copy ``src`` to ``dest`` unless ``dest`` already exists."""
    if dest.exists():
        return False
    LOG.info("Copying %s to %s", src, dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, dest)
    return True


def _relative_output_path(src: str) -> str:
    return os.path.normpath(src).replace("\\", "/").lstrip("/")


class DocsetWriter:
    def __init__(self, dest_root: Path) -> None:
        self.dest_root = dest_root
        (dest_root / RESOURCES_DIR).mkdir(parents=True, exist_ok=True)

    @property
    def documents_dir(self) -> Path:
        return self.dest_root / DOCUMENTS_DIR

    def write_file(self, filename: str, data: bytes) -> Path:
        target = self.dest_root / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def write_plist(self, config: DocsetConfig) -> Path:
        info = {
            "CFBundleIdentifier": config.package,
            "CFBundleName": config.fancy_name,
            "DocSetPlatformFamily": config.package,
            "isDashDocset": True,
            "DashDocSetFamily": "dashtoc3",
            "dashIndexFilePath": config.index,
            "isJavaScriptEnabled": config.allow_js,
        }
        if config.external_url:
            info["DashDocSetFallbackURL"] = config.external_url
        return self.write_file(PLIST_FILE, plistlib.dumps(info))

    def copy_file(self, src: Path, dest: str) -> bool:
        return copy_file(src, self.dest_root / dest)

    def add_content_file(self, src: str) -> bool:
        return copy_file(Path(src), self.documents_dir / _relative_output_path(src))

    def add_html(self, src: str, markup: str) -> Path:
        target = self.documents_dir / _relative_output_path(src)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(markup, encoding="utf-8", newline="")
        return target


class DocsetIndex:
    """The docset search index (SQLite ``searchIndex`` table)."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        if db_path.exists():
            db_path.unlink()
        self.conn = sqlite3.connect(str(db_path))
        self.conn.execute("CREATE TABLE searchIndex(id INTEGER PRIMARY KEY, name TEXT, type TEXT, path TEXT)")
        self.conn.execute("CREATE UNIQUE INDEX anchor ON searchIndex (name, type, path)")
        self.conn.commit()

    def add(self, ref: Reference) -> None:
        self.conn.execute(
            "INSERT OR IGNORE INTO searchIndex(name, type, path) VALUES (?,?,?)",
            (ref.name, ref.entry_type, ref.index_path),
        )

    def commit(self) -> None:
        self.conn.commit()

    def entries(self) -> List[tuple]:
        return list(self.conn.execute("SELECT name, type, path FROM searchIndex ORDER BY id"))

    def close(self) -> None:
        self.conn.commit()
        self.conn.close()

    def __enter__(self) -> "DocsetIndex":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def walk_files(base: str, exclude: Optional[Path] = None) -> Iterator[str]:
    """Yield file paths below ``base`` in lexical order, skipping the ``exclude`` tree."""
    excluded = exclude.resolve() if exclude is not None else None
    for root, dirs, files in os.walk(base):
        dirs[:] = sorted(d for d in dirs if excluded is None or Path(root, d).resolve() != excluded)
        for name in sorted(files):
            yield os.path.normpath(os.path.join(root, name))


class DocsetBuilder:
    def __init__(
        self,
        config: DocsetConfig,
        writer: DocsetWriter,
        index: DocsetIndex,
        counter: Optional[AnchorCounter] = None,
    ) -> None:
        self.config = config
        self.writer = writer
        self.index = index
        self.processor = PageProcessor(config, counter)

    def build(self) -> BuildSummary:
        summary = BuildSummary()
        LOG.info("Building %s from files in '%s'.", self.config.package, self.config.walk_root)

        self.writer.write_plist(self.config)
        if self.config.icon32x32:
            try:
                self.writer.copy_file(Path(self.config.icon32x32), "icon.png")
            except OSError as exc:
                LOG.error("Error copying icon: %s", exc)

        for path in walk_files(self.config.walk_root, exclude=self.writer.dest_root):
            if should_ignore_file(path, self.config):
                LOG.debug("Ignoring %s", path)
                continue
            if is_htmlish(path):
                if self.add_page(path, summary):
                    summary.pages += 1
                else:
                    summary.skipped += 1
            else:
                try:
                    if self.writer.add_content_file(path):
                        summary.resources += 1
                except OSError as exc:
                    LOG.error("Error copying %s: %s", path, exc)
                    summary.skipped += 1
        self.index.commit()
        return summary

    def add_page(self, path: str, summary: BuildSummary) -> bool:
        LOG.info("%s looks like HTML", path)
        try:
            result = self.processor.process_file(path)
            markup = result.render()
        except (OSError, ValueError, ParserRejectedMarkup, RecursionError) as exc:
            LOG.error("Error parsing %s: %s", path, exc)
            return False

        for ref in result.references:
            self.index.add(ref)
            summary.references += 1

        try:
            self.writer.add_html(path, markup)
        except OSError as exc:
            LOG.error("Error writing %s: %s", path, exc)
            return False

        for used in result.used_files:
            if used.startswith("..") or is_htmlish(used) or should_ignore_file(used, self.config):
                continue
            if not os.path.isfile(used):
                LOG.debug("%s: referenced file %s not found", path, used)
                continue
            try:
                if self.writer.add_content_file(used):
                    summary.resources += 1
            except OSError as exc:
                LOG.error("Error copying %s: %s", used, exc)
        return True


def build_docset(config: DocsetConfig, output_dir: Path) -> BuildSummary:
    writer = DocsetWriter(output_dir)
    with DocsetIndex(output_dir / INDEX_FILE) as index:
        return DocsetBuilder(config, writer, index, AnchorCounter()).build()

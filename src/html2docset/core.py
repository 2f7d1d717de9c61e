"""Core extraction and rewriting pipeline for html2docset."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote_plus, unquote, urlsplit

from bs4 import BeautifulSoup
from bs4.element import Declaration, Doctype, NavigableString, PreformattedString, Tag

from .config import DocsetConfig, MatchRule
from .entities import encode_html_entities
from .selectors import Selector

LOG = logging.getLogger("html2docset")

HTML_PARSER = "html.parser"
INPUT_ENCODING = "utf-8"
HTML_EXTENSIONS = (".html", ".htm", ".xhtml", ".html5")

# Second half of a split page; indexed through the first half only.
CONTINUATION_PAGE_SUFFIX = "-2.html"

ANCHOR_CLASS = "dashAnchor"
TOC_TARGET_PREFIX = "//ref_"
BODY_MAX_WIDTH_STYLE = "max-width: 100%;"


@dataclass
class AnchorCounter:
    """Run-scoped source of TOC anchor numbers."""

    value: int = 0

    def next(self) -> int:
        current = self.value
        self.value += 1
        return current


@dataclass(frozen=True)
class Reference:
    selector: str
    name: str
    entry_type: str
    href: str
    menu_description: str = ""

    @property
    def index_path(self) -> str:
        return (
            f"<dash_entry_name={self.name}>"
            f"<dash_entry_originalName={self.name}>"
            f"<dash_entry_menuDescription={self.menu_description}>"
            f"{self.href}"
        )


@dataclass
class PageResult:
    path: str
    references: List[Reference]
    used_files: List[str]
    document: BeautifulSoup

    def render(self) -> str:
        return render_document(self.document)


def _resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def _configure_html2docset_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        handler.setLevel(level)
        LOG.addHandler(handler)
    else:
        for handler in LOG.handlers:
            handler.setLevel(level)
            if handler.formatter is None:
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))


def setup_logging(verbose: bool, debug: bool) -> None:
    level = _resolve_log_level(verbose, debug)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    _configure_html2docset_logger(level)


def is_htmlish(path: str) -> bool:
    return posixpath.splitext(path.replace("\\", "/"))[1].lower() in HTML_EXTENSIONS


def parse_document(raw: Union[bytes, str]) -> BeautifulSoup:
    if isinstance(raw, bytes):
        return BeautifulSoup(raw, HTML_PARSER, from_encoding=INPUT_ENCODING)
    return BeautifulSoup(raw, HTML_PARSER)


def render_document(document: BeautifulSoup) -> str:
    return encode_html_entities(document.decode(formatter="minimal"))


def extract_text(node: Tag) -> str:
    """Concatenate the text nodes below ``node`` depth-first, then strip."""
    parts = [
        str(child)
        for child in node.descendants
        if isinstance(child, NavigableString) and not isinstance(child, PreformattedString)
    ]
    return "".join(parts).strip()


def get_attribute(node: Tag, key: str) -> str:
    value = node.get(key)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def toc_target(index: int, name: str, entry_type: str, is_root: bool) -> str:
    encoded = quote_plus(name, safe="").replace("+", "%20")
    level = 1 if is_root else 0
    return f"{TOC_TARGET_PREFIX}{index}/{entry_type}/{encoded}/{level}"


def ensure_head(document: BeautifulSoup) -> Tag:
    head = document.head
    if head is not None:
        return head
    head = document.new_tag("head")
    if document.html is not None:
        document.html.insert(0, head)
        return head
    # A leading DOCTYPE stays the first node.
    position = 0
    for child in document.contents:
        if not isinstance(child, (Doctype, Declaration)):
            break
        position += 1
    document.insert(position, head)
    return head


class TocMutator:
    """Injects TOC anchors into one document and records their links in <head>."""

    def __init__(self, document: BeautifulSoup, counter: AnchorCounter) -> None:
        self.document = document
        self.counter = counter
        self._head: Optional[Tag] = None

    @property
    def head(self) -> Tag:
        if self._head is None:
            self._head = ensure_head(self.document)
        return self._head

    def anchor_and_link(self, name: str, entry_type: str, is_root: bool) -> Tuple[Tag, Tag]:
        target = toc_target(self.counter.next(), name, entry_type, is_root)
        anchor = self.document.new_tag("a", attrs={"class": ANCHOR_CLASS, "name": target})
        link = self.document.new_tag("link", attrs={"href": target})
        return anchor, link

    def inject(self, node: Tag, name: str, entry_type: str, is_root: bool) -> str:
        anchor, link = self.anchor_and_link(name, entry_type, is_root)
        self.head.append(link)
        node.insert_before(anchor)
        return anchor["name"]


def remove_elements(document: BeautifulSoup, selectors: Sequence[Selector], path: str = "") -> int:
    removed = 0
    for selector in selectors:
        matches = selector.select_all(document)
        if not matches:
            LOG.info("No elements matching '%s' to remove in %s", selector, path)
            continue
        for node in matches:
            node.extract()
            removed += 1
    return removed


def _add_inline_style(node: Tag, style: str) -> None:
    existing = get_attribute(node, "style").strip()
    if existing:
        node["style"] = f"{existing.rstrip(';')}; {style}"
    else:
        node["style"] = style


def replace_body(document: BeautifulSoup, selector: Selector, path: str = "") -> bool:
    content = selector.select_first(document)
    if content is None:
        LOG.error("No body found matching '%s' in %s", selector, path)
        return False

    body = document.body
    if body is not None and (content is body or any(parent is content for parent in body.parents)):
        LOG.warning("Body selector '%s' matches the page body or an ancestor of it in %s; body kept", selector, path)
        return False

    attrs: Dict[str, Any] = {}
    if body is not None:
        attrs = {key: list(value) if isinstance(value, list) else value for key, value in body.attrs.items()}
    new_body = document.new_tag("body", attrs=attrs)
    if body is not None:
        body.replace_with(new_body)
    else:
        container = document.html if document.html is not None else document
        container.append(new_body)

    content.extract()
    _add_inline_style(content, BODY_MAX_WIDTH_STYLE)
    new_body.append(content)
    return True


def extract_title(document: BeautifulSoup, selector: Optional[Selector]) -> str:
    if selector is None:
        return ""
    node = selector.select_first(document)
    if node is None:
        LOG.debug("No title found matching '%s'", selector)
        return ""
    return extract_text(node)


def _search_prefix(document: BeautifulSoup, rule: MatchRule, text: str, path: str) -> str:
    if rule.prefix_selector is None:
        return ""
    node = rule.prefix_selector.select_first(document)
    if node is None:
        LOG.debug("No search prefix matching '%s' in %s", rule.prefix_selector, path)
        return ""
    prefix_text = extract_text(node)
    # Avoid names like "prefix.prefix" when the entry is the prefix element itself.
    if prefix_text == text:
        return ""
    return f"{prefix_text}."


def find_refs(
    document: BeautifulSoup,
    rules: Sequence[MatchRule],
    path: str,
    mutator: TocMutator,
    title: str = "",
) -> List[Reference]:
    refs: List[Reference] = []
    active = [rule for rule in rules if rule.applies_to(path)]
    if not active:
        return refs

    continuation = path.endswith(CONTINUATION_PAGE_SUFFIX)

    # Snapshot: anchors injected below must not be visited.
    for node in list(document.find_all(True)):
        for rule in active:
            if not rule.selector.matches(node):
                continue

            text = extract_text(node)
            if rule.require_text is not None and rule.require_text.search(text) is None:
                LOG.info(
                    "Skipping entry for '%s' in %s (text not matching given regexp '%s')",
                    text,
                    path,
                    rule.require_text.pattern,
                )
                continue
            if rule.skip_text is not None and rule.skip_text.search(text) is not None:
                LOG.info(
                    "Skipping entry for '%s' in %s (text matches skip regexp '%s')",
                    text,
                    path,
                    rule.skip_text.pattern,
                )
                continue

            name = get_attribute(node, rule.attribute) if rule.attribute else text
            prefix = _search_prefix(document, rule, text, path)

            if not continuation:
                link_href = get_attribute(node, "href")
                if not link_href.startswith("#"):
                    link_href = "#" + get_attribute(node, "id")
                ref = Reference(
                    selector=rule.selector.pattern,
                    name=prefix + name,
                    entry_type=rule.entry_type,
                    href=path + link_href,
                    menu_description=title,
                )
                LOG.debug("Match(%s): '%s' is type %s at %s", ref.selector, ref.name, ref.entry_type, ref.href)
                refs.append(ref)

            mutator.inject(node, name, rule.entry_type, rule.toc_root)
    return refs


@dataclass(frozen=True)
class RuleSet:
    """Primary rules, with backup rules used only when the primary ones find nothing."""

    primary: Tuple[MatchRule, ...] = ()
    backup: Tuple[MatchRule, ...] = ()

    @classmethod
    def from_config(cls, config: DocsetConfig) -> "RuleSet":
        return cls(primary=tuple(config.selectors), backup=tuple(config.backup_selectors))

    def match(
        self,
        document: BeautifulSoup,
        path: str,
        mutator: TocMutator,
        title: str = "",
    ) -> List[Reference]:
        refs = find_refs(document, self.primary, path, mutator, title)
        if not refs and self.backup:
            LOG.debug("No primary selector matched in %s; trying backup selectors", path)
            refs = find_refs(document, self.backup, path, mutator, title)
        return refs


def collect_used_files(document: BeautifulSoup, path: str) -> List[str]:
    """Relative resources referenced through href/src, resolved against the page directory."""
    used: List[str] = []
    base_dir = posixpath.dirname(path)
    for node in document.find_all(True):
        for key, value in node.attrs.items():
            if key not in ("href", "src"):
                continue
            raw = " ".join(value) if isinstance(value, list) else str(value)
            try:
                parts = urlsplit(raw)
            except ValueError as exc:
                LOG.error("%s: Error parsing URL '%s': %s", path, raw, exc)
                continue
            if not parts.scheme and not parts.netloc and parts.path:
                used.append(posixpath.normpath(posixpath.join(base_dir, unquote(parts.path))))
            break
    return used


class PageProcessor:
    """Runs parse, mutation and extraction for one page at a time."""

    def __init__(self, config: DocsetConfig, counter: Optional[AnchorCounter] = None) -> None:
        self.config = config
        self.counter = counter if counter is not None else AnchorCounter()
        self.rules = RuleSet.from_config(config)

    def process_file(self, path: str) -> PageResult:
        with open(path, "rb") as handle:
            raw = handle.read()
        return self.process(raw, path)

    def process(self, raw: Union[bytes, str], path: str) -> PageResult:
        document = parse_document(raw)
        used_files = collect_used_files(document, path)

        remove_elements(document, self.config.remove_elements, path)
        if self.config.body_selector is not None:
            replace_body(document, self.config.body_selector, path)

        title = extract_title(document, self.config.title_selector)
        mutator = TocMutator(document, self.counter)
        refs = self.rules.match(document, path, mutator, title)
        return PageResult(path=path, references=refs, used_files=used_files, document=document)

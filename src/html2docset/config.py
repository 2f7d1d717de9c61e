"""Configuration loading for html2docset (dashing.yaml)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from .selectors import Selector, SelectorError, compile_selector

DEFAULT_CONFIG_NAME = "dashing.yaml"

DEFAULT_CONFIG_TEXT = """\
name: "{name}"
package: "{package}"
index: "index.html"
walk_root: "."
selectors:
  - css: "h1"
    type: "Guide"
    toc_root: true
  - css: "dt a"
    type: "Command"
  - css: "h2"
    type: "Section"
backup_selectors: []
ignore_path_regexes:
  - "\\\\bDO_NOT_INDEX\\\\b"
remove_elements: []
css_selector_for_body: null
css_selector_for_title: "title"
icon32x32: ""
allowJS: false
externalURL: ""
"""


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed or validated."""


@dataclass(frozen=True)
class MatchRule:
    selector: Selector
    entry_type: str
    attribute: str = ""
    require_text: Optional[Pattern[str]] = None
    skip_text: Optional[Pattern[str]] = None
    match_path: Optional[Pattern[str]] = None
    toc_root: bool = False
    toc_child: bool = False
    prefix_selector: Optional[Selector] = None

    def applies_to(self, path: str) -> bool:
        return self.match_path is None or self.match_path.search(path) is not None


@dataclass
class DocsetConfig:
    """Represents the settings defined in dashing.yaml."""

    package: str
    name: str = ""
    index: str = ""
    selectors: Tuple[MatchRule, ...] = ()
    backup_selectors: Tuple[MatchRule, ...] = ()
    ignore_path_regexes: List[Pattern[str]] = field(default_factory=list)
    walk_root: str = "."
    remove_elements: List[Selector] = field(default_factory=list)
    body_selector: Optional[Selector] = None
    title_selector: Optional[Selector] = None
    icon32x32: str = ""
    allow_js: bool = False
    external_url: str = ""

    @property
    def fancy_name(self) -> str:
        return self.name or self.package.upper()


def load_config(config_path: Path) -> DocsetConfig:
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to open configuration file '{config_path}': {exc}") from exc
    return parse_config(raw, source=str(config_path))


def parse_config(raw: str, source: str = "<string>") -> DocsetConfig:
    try:
        import yaml  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"PyYAML not available: {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML in {source}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{source} must contain a mapping at the root")

    package = _as_str(data.get("package"), "package")
    if not package:
        raise ConfigError(f"{source} missing non-empty key: package")

    return DocsetConfig(
        package=package,
        name=_as_str(data.get("name"), "name"),
        index=_as_str(data.get("index"), "index"),
        selectors=_parse_rules(data.get("selectors"), "selectors"),
        backup_selectors=_parse_rules(data.get("backup_selectors"), "backup_selectors"),
        ignore_path_regexes=[
            _compile_regex(pattern, "ignore_path_regexes")
            for pattern in _as_str_list(data.get("ignore_path_regexes"), "ignore_path_regexes")
        ],
        walk_root=_as_str(data.get("walk_root"), "walk_root") or ".",
        remove_elements=[
            _compile_css(pattern, "remove_elements")
            for pattern in _as_str_list(data.get("remove_elements"), "remove_elements")
        ],
        body_selector=_optional_css(data.get("css_selector_for_body"), "css_selector_for_body"),
        title_selector=_optional_css(data.get("css_selector_for_title"), "css_selector_for_title"),
        icon32x32=_as_str(data.get("icon32x32"), "icon32x32"),
        allow_js=_as_bool(data.get("allowJS"), "allowJS"),
        external_url=_as_str(data.get("externalURL"), "externalURL"),
    )


def write_default_config(path: Path, package: str = "") -> None:
    package = package or path.resolve().parent.name or "docs"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TEXT.format(name=package.title(), package=package), encoding="utf-8")


def _parse_rules(value: Any, key: str) -> Tuple[MatchRule, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list of rules")
    return tuple(_parse_rule(item, f"{key}[{idx}]") for idx, item in enumerate(value))


def _parse_rule(item: Any, where: str) -> MatchRule:
    if not isinstance(item, dict):
        raise ConfigError(f"{where} must be a mapping")
    css = _as_str(item.get("css"), f"{where}.css")
    if not css:
        raise ConfigError(f"{where} missing non-empty key: css")
    entry_type = _as_str(item.get("type"), f"{where}.type")
    if not entry_type:
        raise ConfigError(f"{where} missing non-empty key: type")
    return MatchRule(
        selector=_compile_css(css, f"{where}.css"),
        entry_type=entry_type,
        attribute=_as_str(item.get("attr"), f"{where}.attr"),
        require_text=_optional_regex(item.get("requiretext"), f"{where}.requiretext"),
        skip_text=_optional_regex(item.get("skiptext"), f"{where}.skiptext"),
        match_path=_optional_regex(item.get("matchpath"), f"{where}.matchpath"),
        toc_root=_as_bool(item.get("toc_root"), f"{where}.toc_root"),
        toc_child=_as_bool(item.get("toc_child"), f"{where}.toc_child"),
        prefix_selector=_optional_css(
            item.get("css_selector_for_search_prefix"), f"{where}.css_selector_for_search_prefix"
        ),
    )


def _compile_css(pattern: str, key: str) -> Selector:
    try:
        return compile_selector(pattern)
    except SelectorError as exc:
        raise ConfigError(f"{key}: {exc}") from exc


def _optional_css(value: Any, key: str) -> Optional[Selector]:
    pattern = _as_str(value, key)
    return _compile_css(pattern, key) if pattern else None


def _compile_regex(pattern: str, key: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"{key}: invalid regexp pattern '{pattern}': {exc}") from exc


def _optional_regex(value: Any, key: str) -> Optional[Pattern[str]]:
    pattern = _as_str(value, key)
    return _compile_regex(pattern, key) if pattern else None


def _as_str(value: Any, key: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigError(f"{key} must be a string")
    return str(value)


def _as_str_list(value: Any, key: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, Sequence):
        raise ConfigError(f"{key} must be a list of strings")
    return [_as_str(item, key) for item in value if item is not None]


def _as_bool(value: Any, key: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def config_summary(config: DocsetConfig) -> Dict[str, Any]:
    return {
        "package": config.package,
        "name": config.fancy_name,
        "selectors": len(config.selectors),
        "backup_selectors": len(config.backup_selectors),
        "remove_elements": len(config.remove_elements),
        "walk_root": config.walk_root,
    }

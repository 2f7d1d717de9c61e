import pytest

from html2docset.config import DocsetConfig, parse_config


@pytest.fixture
def make_config():
    def _make(yaml_text: str) -> DocsetConfig:
        return parse_config(yaml_text)

    return _make

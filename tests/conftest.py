"""Shared fixtures for the DLMS toolkit test-suite.

Every test runs with ``DLMS_CONFIG_DIR`` pointing at a temporary folder so
user configuration on the machine running the tests is never read or written.
"""

import logging
from typing import Any, Dict, List

import pytest

from dlms_toolkit.config import ConfigManager, EditorSettings
from dlms_toolkit.core.identifiers import join_id
from dlms_toolkit.core.tree import DocumentTree

# Configure test logging
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config manager at an empty temporary directory."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("DLMS_CONFIG_DIR", str(config_dir))
    ConfigManager.reset()
    yield config_dir
    ConfigManager.reset()


@pytest.fixture
def settings():
    return EditorSettings(autosave_enabled=False)


@pytest.fixture
def sample_snapshot() -> List[Dict[str, Any]]:
    """Two roots, three levels deep."""
    return [
        {
            "id": "1", "name": "Introduction", "content": ["Welcome"], "parentId": None,
            "children": [
                {"id": "1-1", "name": "Scope", "content": [], "parentId": "1", "children": []},
                {
                    "id": "1-2", "name": "Terms", "content": ["Definitions"], "parentId": "1",
                    "children": [
                        {"id": "1-2-1", "name": "Glossary", "content": [], "parentId": "1-2", "children": []},
                    ],
                },
            ],
        },
        {
            "id": "2", "name": "Body", "content": [], "parentId": None,
            "children": [
                {"id": "2-1", "name": "Part A", "content": ["Alpha"], "parentId": "2", "children": []},
            ],
        },
    ]


@pytest.fixture
def tree(sample_snapshot):
    t = DocumentTree()
    t.load_snapshot(sample_snapshot)
    return t


@pytest.fixture
def assert_contiguous():
    """Return a checker for sibling order and id derivation across a tree."""

    def check(t: DocumentTree) -> None:
        def _walk(parent) -> None:
            children = t.children(parent)
            parent_id = parent.id if parent is not None else None
            assert [c.order for c in children] == list(range(1, len(children) + 1))
            for child in children:
                assert child.id == join_id(parent_id, child.order, t.separator)
                assert child.parent_id == parent_id
                _walk(child)

        _walk(None)
        assert set(t.registry) == {n.id for n in t.iter_nodes()}

    return check


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, delay, function):
        self.delay = delay
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


@pytest.fixture
def fake_timers():
    """Timer factory recording every timer it creates."""
    created: List[FakeTimer] = []

    def factory(delay, function):
        timer = FakeTimer(delay, function)
        created.append(timer)
        return timer

    factory.created = created
    return factory

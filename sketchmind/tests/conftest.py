"""Shared fixtures for the sketchmind test suite."""

import pytest

from sketchmind.analysis.models import Graph, GraphEdge
from sketchmind.llm.token_tracker import get_usage_tracker

from .helpers import make_node


@pytest.fixture(autouse=True)
def _reset_usage_tracker():
    get_usage_tracker().reset()
    yield
    get_usage_tracker().reset()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.delenv("SKETCHMIND_CONFIG", raising=False)
    monkeypatch.delenv("SKETCHMIND_BACKEND_URL", raising=False)
    monkeypatch.delenv("SKETCHMIND_LLM_VERBOSE", raising=False)
    monkeypatch.setenv("SKETCHMIND_DEBUG_DIR", str(tmp_path / "debug"))


@pytest.fixture
def revenue_graph():
    """Revenue -> Costs, connected by a "funds" edge."""
    return Graph(
        nodes=[make_node("1", "Revenue", 100, 100), make_node("2", "Costs", 400, 100)],
        edges=[GraphEdge(id="e1-2", source="1", target="2", label="funds")],
    )


@pytest.fixture
def chain_graph():
    """a - b - c plus an isolated node d."""
    return Graph(
        nodes=[
            make_node("a", "Alpha", 0, 0),
            make_node("b", "Beta", 200, 0),
            make_node("c", "Gamma", 400, 0),
            make_node("d", "Delta", 0, 300),
        ],
        edges=[
            GraphEdge(id="e1", source="a", target="b", label="feeds"),
            GraphEdge(id="e2", source="b", target="c"),
        ],
    )

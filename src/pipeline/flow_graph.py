# src/pipeline/flow_graph.py — v1
"""Strategy flow graph: NetworkX view of steps and their input wiring.

Edges run upstream -> downstream and carry the input slot they feed
(e.g. "dollhouse_view" or "arbitrary_image"). Exported as NetworkX
node-link JSON, which is what the UI renders as the strategy DAG.
"""

from __future__ import annotations

import json
from pathlib import Path

import networkx as nx

from stratrun.config.input_keys import ARBITRARY_REFERENCE_FIELD, SCENE_REFERENCE_FIELDS
from stratrun.core.models import StrategyStep


def build_flow_graph(steps: list[StrategyStep]) -> nx.DiGraph:
    """Build a directed graph with one node per step order."""
    graph = nx.DiGraph()
    for step in steps:
        graph.add_node(
            step.step_order,
            name=step.name or f"Step {step.step_order}",
            model=step.model,
            prompt_version_id=step.prompt_version_id,
        )
    for step in steps:
        for field_name, upstream in step.upstream_references().items():
            if field_name == ARBITRARY_REFERENCE_FIELD:
                slot = "arbitrary_image"
            else:
                slot = SCENE_REFERENCE_FIELDS[field_name]
            if graph.has_edge(upstream, step.step_order):
                graph.edges[upstream, step.step_order]["slots"].append(slot)
            else:
                graph.add_edge(upstream, step.step_order, slots=[slot])
    return graph


def root_steps(graph: nx.DiGraph) -> list[int]:
    """Steps with no upstream references (eligible immediately)."""
    return sorted(n for n in graph.nodes if graph.in_degree(n) == 0)


def export_flow_graph(steps: list[StrategyStep], output_path: str | Path) -> str:
    """Write the flow graph as node-link JSON and return the path."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = nx.node_link_data(build_flow_graph(steps), edges="links")
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str))
    return str(path)

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

from loguru import logger

from .errors import InvariantViolation, SerializationError
from .genes import Node
from .graph import Graph

GRAPH_SUFFIX = ".json"


def graph_to_dict(graph: Graph) -> dict:
    return {
        "nodes": [asdict(graph.nodes[nid]) for nid in sorted(graph.nodes)],
        "edges": [
            {"from_id": edge.src, "to_id": edge.dst, "weight": edge.weight}
            for edge in graph.edges()
        ],
    }


def graph_from_dict(data: dict) -> Graph:
    graph = Graph()
    for record in data["nodes"]:
        graph.add_node(
            Node(
                node_id=int(record["node_id"]),
                label=str(record["label"]),
                kind=str(record["kind"]),
                bias=float(record["bias"]),
                port=None if record.get("port") is None else int(record["port"]),
            )
        )
    for record in data["edges"]:
        graph.add_edge(int(record["from_id"]), int(record["to_id"]), float(record["weight"]))
    return graph


def _check_suffix(path: Path) -> None:
    if path.suffix != GRAPH_SUFFIX:
        raise SerializationError(path, f"graph files must use the {GRAPH_SUFFIX} extension")


def save_graph(graph: Graph, path: Path) -> None:
    path = Path(path)
    _check_suffix(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(graph_to_dict(graph), f, indent=2)
    except OSError as exc:
        raise SerializationError(path, f"could not write graph file: {exc}") from exc


def load_graph(path: Path) -> Graph:
    path = Path(path)
    _check_suffix(path)
    if not path.is_file():
        raise SerializationError(path, "file does not exist")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return graph_from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        if isinstance(exc, InvariantViolation):
            message = f"stored graph is invalid: {exc}"
        else:
            message = f"corrupt graph file: {exc!r}"
        raise SerializationError(path, message) from exc


def population_path(directory: Path, index: int) -> Path:
    return Path(directory) / f"graph-{index}{GRAPH_SUFFIX}"


def saved_graph_paths(directory: Path) -> list[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(directory.glob(f"graph-*{GRAPH_SUFFIX}"))


def save_population(graphs: list[Graph], directory: Path) -> list[Path]:
    paths = []
    for i, graph in enumerate(graphs):
        path = population_path(directory, i)
        save_graph(graph, path)
        paths.append(path)
    logger.info(f"Saved {len(graphs)} graphs to {directory}")
    return paths


def load_population(directory: Path, size: int) -> list[Graph]:
    graphs = [load_graph(population_path(directory, i)) for i in range(size)]
    logger.info(f"Loaded {len(graphs)} graphs from {directory}")
    return graphs

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from .graph import Graph


def plot_history(history: list[dict[str, float]], path: Path) -> None:
    """Fitness per generation above the champion's growth towards a fully dense DAG."""
    if not history:
        return

    gens = [h["generation"] for h in history]
    series = {key: np.array([h[key] for h in history], dtype=float) for key in history[0]}

    fig, (fit_ax, growth_ax) = plt.subplots(2, 1, figsize=(10, 8), sharex=True)

    fit_ax.plot(gens, series["best_fitness"], label="best fitness", linewidth=2)
    fit_ax.plot(gens, series["mean_fitness"], label="mean fitness", linewidth=1.6)
    failed = np.flatnonzero(series["failed"] > 0)
    if failed.size:
        fit_ax.scatter(
            np.asarray(gens)[failed],
            series["best_fitness"][failed],
            marker="x",
            color="#d62728",
            label="generation with failed episodes",
        )
    fit_ax.set_ylabel("fitness")
    fit_ax.grid(True, alpha=0.3)
    fit_ax.legend()

    # Shaded band is the room left before the champion's edge set is saturated.
    growth_ax.fill_between(
        gens, series["champ_edges"], series["champ_max_edges"], step="mid", alpha=0.2, label="unused edge capacity"
    )
    growth_ax.step(gens, series["champ_max_edges"], where="mid", linestyle="--", label="max possible edges")
    growth_ax.step(gens, series["champ_edges"], where="mid", linewidth=2, label="champion edges")
    growth_ax.plot(gens, series["mean_edges"], linewidth=1.0, alpha=0.7, label="mean edges")
    growth_ax.set_ylabel("edges")
    growth_ax.set_xlabel("generation")
    growth_ax.grid(True, alpha=0.3)

    hidden_ax = growth_ax.twinx()
    hidden_ax.step(gens, series["champ_hidden_nodes"], where="mid", color="#9467bd", label="champion hidden nodes")
    hidden_ax.set_ylabel("hidden nodes")

    handles, labels = growth_ax.get_legend_handles_labels()
    extra_handles, extra_labels = hidden_ax.get_legend_handles_labels()
    growth_ax.legend(handles + extra_handles, labels + extra_labels, loc="upper left")

    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=180)
    plt.close(fig)


def plot_graph(graph: Graph, path: Path, title: str = "Graph Topology") -> None:
    layers, detached = graph.topological_layers()
    # Detached nodes get their own column after the outputs.
    columns = [layer for layer in layers if layer]
    if detached:
        columns.append(detached)

    pos: dict[int, tuple[float, float]] = {}
    for x, column in enumerate(columns):
        ys = np.array([0.5]) if len(column) == 1 else np.linspace(0.1, 0.9, len(column))
        for node, y in zip(column, ys):
            pos[node.node_id] = (float(x), float(y))

    fig, ax = plt.subplots(figsize=(11, 6))

    for edge in graph.edges():
        x1, y1 = pos[edge.src]
        x2, y2 = pos[edge.dst]
        color = "#1f77b4" if edge.weight >= 0 else "#d62728"
        lw = 0.7 + min(2.5, abs(edge.weight))
        ax.plot([x1, x2], [y1, y2], color=color, alpha=0.65, linewidth=lw)

    kind_color = {"input": "#2ca02c", "hidden": "#9467bd", "output": "#ff7f0e"}
    detached_ids = {node.node_id for node in detached}
    for nid, node in sorted(graph.nodes.items()):
        x, y = pos[nid]
        color = "#7f7f7f" if nid in detached_ids else kind_color[node.kind]
        ax.scatter([x], [y], s=160, color=color, edgecolors="black", zorder=3)
        ax.text(x, y + 0.03, f"{nid}:{node.bias:+.2f}", ha="center", va="bottom", fontsize=8)

    ax.set_title(title)
    ax.set_xlabel("layer")
    ax.set_ylabel("node position")
    ax.set_xlim(-0.5, len(columns) - 0.5)
    ax.set_ylim(0.0, 1.0)
    ax.grid(True, alpha=0.2)

    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=180)
    plt.close(fig)

"""
kalends.viz
===========

Minimal plotting helpers for the workload and deadline dashboards and
for documenting the stage graphs.

Outputs are PNGs written to the *images/* folder (created on first
save).  Filenames can be overridden via keyword argument.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import networkx as nx  # noqa: E402

from .stage_graph import ADVANCE, stage_graph  # noqa: E402
from .workload import ServiceLine, StaffWorkload  # noqa: E402

# default output dir
_IMG_DIR = Path("images")

PathLike = Union[str, os.PathLike]


def _save(out_path: Optional[PathLike], default_name: str) -> Path:
    out_path = Path(out_path) if out_path else _IMG_DIR / default_name
    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=120, bbox_inches="tight")
    plt.close()
    return out_path


# ---------------------------------------------------------------------
# Plot 1 - stacked bar chart of active / inactive work per staff member
# ---------------------------------------------------------------------
def workload_chart(
    workloads: Mapping[str, StaffWorkload],
    out_path: Optional[PathLike] = None,
    line: Optional[ServiceLine] = None,
) -> Path:
    """
    Generate a stacked bar chart of active vs inactive clients per user.

    Parameters
    ----------
    workloads : mapping
        Output of :func:`kalends.workload.aggregate_workload`.
    out_path : str or Path, optional
        Where to save the PNG; defaults to ``images/workload.png``.
    line : ServiceLine, optional
        Restrict to one service line; all lines are summed otherwise.

    Returns
    -------
    pathlib.Path
        Final image path for convenience.
    """
    users = sorted(workloads)
    if line is None:
        active = [workloads[u].active for u in users]
        inactive = [workloads[u].inactive for u in users]
    else:
        active = [workloads[u].lines[line].active for u in users]
        inactive = [workloads[u].lines[line].inactive for u in users]

    plt.figure(figsize=(max(4, len(users) * 0.8), 4))
    plt.bar(users, active, color="#2b9348", edgecolor="#333", label="Active")
    plt.bar(users, inactive, bottom=active, color="#adb5bd", edgecolor="#333", label="Inactive")
    plt.grid(axis="y", linestyle=":", alpha=0.3)
    plt.title(f"Workload - {line.name}" if line else "Workload")
    plt.ylabel("Clients")
    plt.legend()
    plt.tight_layout()
    return _save(out_path, "workload.png")


# ---------------------------------------------------------------------
# Plot 2 - deadline breakdown windows
# ---------------------------------------------------------------------
def deadline_breakdown_chart(
    breakdown: Mapping[int, int],
    out_path: Optional[PathLike] = None,
) -> Path:
    """
    Bar chart of open deadlines per window (output of
    :func:`kalends.buckets.deadline_breakdown`).
    """
    windows = list(breakdown)
    counts = [breakdown[w] for w in windows]

    plt.figure()
    bars = plt.bar([f"<= {w}d" for w in windows], counts, color="#e76f51", edgecolor="#333")
    # counts on top of each bar
    for rect, cnt in zip(bars, counts):
        plt.text(rect.get_x() + rect.get_width() / 2, cnt + 0.05, str(cnt),
                 ha="center", va="bottom", fontsize=8, color="#333")
    plt.grid(axis="y", linestyle=":", alpha=0.3)
    plt.title("Upcoming Deadlines")
    plt.ylabel("Deadlines")
    plt.tight_layout()
    return _save(out_path, "deadline_breakdown.png")


# ---------------------------------------------------------------------
# Plot 3 - workflow stage graph
# ---------------------------------------------------------------------
def plot_stage_graph(workflow_type, out_path: Optional[PathLike] = None) -> Path:
    """
    Draw a workflow's stages left to right in sequence order.

    Advance edges are solid, rework edges dashed; system-only stages are
    shaded grey.
    """
    sg = stage_graph(workflow_type)
    g = sg.g
    pos = {stage: (data["order"], 0) for stage, data in g.nodes(data=True)}
    colors = ["#adb5bd" if data["auto_set"] else "#8d99ae" for _, data in g.nodes(data=True)]
    advance = [(a, b) for a, b, d in g.edges(data=True) if d["kind"] == ADVANCE]
    rework = [(a, b) for a, b, d in g.edges(data=True) if d["kind"] != ADVANCE]

    plt.figure(figsize=(max(8, len(pos) * 1.1), 4))
    nx.draw_networkx_nodes(g, pos, node_color=colors, node_size=700)
    nx.draw_networkx_labels(g, pos, labels={s: str(d["order"] + 1) for s, d in g.nodes(data=True)}, font_size=8)
    nx.draw_networkx_edges(g, pos, edgelist=advance, arrowstyle="->", arrowsize=12)
    nx.draw_networkx_edges(g, pos, edgelist=rework, style="dashed", alpha=0.4,
                           arrowstyle="->", arrowsize=8, connectionstyle="arc3,rad=0.35")

    plt.title(f"{sg.definition.workflow_type} stages")
    plt.axis("off")
    plt.tight_layout()
    return _save(out_path, f"{str(sg.definition.workflow_type).lower()}_stages.png")

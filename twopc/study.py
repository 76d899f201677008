"""
Parameter study for the two-phase commit simulator.

Runs a base scenario across a grid of drop rates (and optionally
latencies) and summarises how often transactions commit, how long they
take and how much retrying the coordinator needs:
- commit rate
- duration avg/p50/p95
- mean Prepare sends per transaction
- transactions that finished without every Ack
"""

import json
import os
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from .log import log
from .runner import run_scenario
from .scenarios import Scenario


DEFAULT_DROP_RATES = [0.0, 0.05, 0.1, 0.2, 0.3]


def run_study(
    base: Scenario,
    drop_rates: Sequence[float] = DEFAULT_DROP_RATES,
    latencies_ms: Optional[Sequence[float]] = None,
) -> Dict[str, Any]:
    """Run the base scenario at every (latency, drop rate) point."""
    latencies = list(latencies_ms) if latencies_ms else [base.network.latency_ms]

    points: List[Dict[str, Any]] = []
    for latency in latencies:
        for drop_rate in drop_rates:
            scenario = replace(
                base,
                name=f"{base.name}@latency={latency}ms,drop={drop_rate}",
                network=replace(base.network, latency_ms=latency, drop_rate=drop_rate),
            )
            log.study.info("Running %s (%d transactions)", scenario.name, scenario.transactions)
            result = run_scenario(scenario)
            points.append({
                "latency_ms": latency,
                "drop_rate": drop_rate,
                "transactions": len(result.results),
                "commit_rate": result.commit_rate,
                "incomplete": result.incomplete_count,
                "safety_violations": len(result.safety_violations),
                "mean_prepare_sends": result.mean_prepare_sends(),
                "latency": result.latency_summary(),
            })

    return {
        "base_scenario": base.to_dict(),
        "drop_rates": list(drop_rates),
        "latencies_ms": latencies,
        "points": points,
    }


def save_results(results: Dict[str, Any], path: str):
    """Write study results as JSON."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(results, f, indent=2, default=str)
    log.study.info("Results saved to %s", path)


def load_results(path: str) -> Dict[str, Any]:
    with open(path) as f:
        return json.load(f)


def generate_study_visualizations(results: Dict[str, Any], output_dir: str) -> List[str]:
    """
    Plot commit rate and mean duration against drop rate, one line per latency.

    Returns the paths of the written images.
    """
    import matplotlib
    matplotlib.use('Agg')  # Non-interactive backend
    import matplotlib.pyplot as plt
    import numpy as np

    os.makedirs(output_dir, exist_ok=True)
    drop_rates = np.array(results["drop_rates"], dtype=float)
    written = []

    # 1. Commit rate vs drop rate
    fig, ax = plt.subplots(figsize=(10, 6))
    for latency in results["latencies_ms"]:
        series = _series(results, latency, lambda p: p["commit_rate"])
        ax.plot(drop_rates, series * 100, marker='o', label=f"{latency:g} ms")
    ax.set_xlabel('Drop rate')
    ax.set_ylabel('Committed transactions (%)')
    ax.set_ylim(0, 105)
    ax.set_title('Commit Rate vs Message Loss')
    ax.legend(title='Average latency')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, "commit_rate.png")
    plt.savefig(path, dpi=150)
    plt.close()
    written.append(path)

    # 2. Mean duration vs drop rate
    fig, ax = plt.subplots(figsize=(10, 6))
    for latency in results["latencies_ms"]:
        series = _series(results, latency, lambda p: p["latency"]["avg"])
        ax.plot(drop_rates, series * 1000, marker='s', label=f"{latency:g} ms")
    ax.set_xlabel('Drop rate')
    ax.set_ylabel('Mean transaction duration (ms)')
    ax.set_title('Transaction Duration vs Message Loss')
    ax.legend(title='Average latency')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, "duration.png")
    plt.savefig(path, dpi=150)
    plt.close()
    written.append(path)

    log.study.info("Visualizations saved to %s/", output_dir)
    return written


def _series(results: Dict[str, Any], latency: float, metric):
    import numpy as np

    by_drop = {
        p["drop_rate"]: metric(p)
        for p in results["points"]
        if p["latency_ms"] == latency
    }
    return np.array([by_drop.get(d, np.nan) for d in results["drop_rates"]], dtype=float)

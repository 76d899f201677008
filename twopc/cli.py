"""
Command line entry point.

    twopc-sim run --participants 3 --latency 10 --drop-rate 0.1
    twopc-sim run --scenario scenarios/lossy_network.yaml --json
    twopc-sim study --drop-rates 0 0.1 0.2 --output results --plot
"""

import argparse
import json
import os
import sys
from typing import List, Optional

from .log import log
from .runner import ScenarioResult, run_scenario
from .scenarios import (
    Scenario, NetworkSpec, ParticipantSpec, CoordinatorSpec,
    ValidationError, load_scenario, validate_scenario,
)
from .study import (
    DEFAULT_DROP_RATES,
    generate_study_visualizations,
    run_study,
    save_results,
)


VERBOSITY_DEFAULT = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="twopc-sim",
        description="Simulate two-phase commit over an unreliable network.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one scenario and print the outcome.")
    _add_scenario_arguments(run_parser)
    run_parser.add_argument("--json", action="store_true", help="Print the full result as JSON.")

    study_parser = subparsers.add_parser("study", help="Sweep drop rate (and latency) for a scenario.")
    _add_scenario_arguments(study_parser)
    study_parser.add_argument("--drop-rates", type=float, nargs="+", default=DEFAULT_DROP_RATES,
                              help="Drop rates to sweep.")
    study_parser.add_argument("--latencies", type=float, nargs="+", default=None,
                              help="Average latencies (ms) to sweep. Defaults to --latency.")
    study_parser.add_argument("--output", default="results",
                              help="Directory for study.json and plots.")
    study_parser.add_argument("--plot", action="store_true", help="Write PNG plots with matplotlib.")

    return parser


def _add_scenario_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--scenario", help="YAML scenario file; overrides the flags below.")
    parser.add_argument("--participants", type=int, default=3, help="Number of participants.")
    parser.add_argument("--latency", type=float, default=10, help="Average network latency in ms.")
    parser.add_argument("--drop-rate", type=float, default=0.0, help="Packet drop rate (0.0 - 1.0).")
    parser.add_argument("--abort-rate", type=float, default=0.0,
                        help="Probability of a participant voting No (0.0 - 1.0).")
    parser.add_argument("--timeout", type=float, default=5, help="Phase timeout in seconds.")
    parser.add_argument("--retry-interval", type=float, default=500, help="Retry interval in ms.")
    parser.add_argument("--jitter", type=float, default=0.2, help="Network jitter (0.0 - 1.0).")
    parser.add_argument("--transactions", type=int, default=1, help="Transactions to run.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible runs.")
    parser.add_argument("--verbosity", "-v", type=int, default=VERBOSITY_DEFAULT,
                        help="Verbosity level (0-5).")


def scenario_from_args(args: argparse.Namespace) -> Scenario:
    """Build the scenario described by a file or by the command line flags."""
    if args.scenario:
        return load_scenario(args.scenario)

    scenario = Scenario(
        name="command-line",
        seed=args.seed,
        transactions=args.transactions,
        network=NetworkSpec(
            latency_ms=args.latency,
            drop_rate=args.drop_rate,
            jitter=args.jitter,
        ),
        participants=ParticipantSpec(
            count=args.participants,
            abort_rate=args.abort_rate,
        ),
        coordinator=CoordinatorSpec(
            timeout_s=args.timeout,
            retry_interval_ms=args.retry_interval,
        ),
    )
    validate_scenario(scenario)
    return scenario


def format_configuration(scenario: Scenario) -> str:
    lines = [
        "--- 2PC Simulation Configuration ---",
        f"Scenario: {scenario.name}",
        f"Participants: {scenario.participants.count}",
        f"Latency: {scenario.network.latency_ms:g} ms",
        f"Jitter: {scenario.network.jitter:.2f}",
        f"Drop Rate: {scenario.network.drop_rate:.2f}",
        f"Abort Rate: {scenario.participants.abort_rate:.2f}",
    ]
    if scenario.participants.force_vote_no:
        lines.append(f"Forced No: {', '.join(scenario.participants.force_vote_no)}")
    lines += [
        f"Timeout: {scenario.coordinator.timeout_s:g} s",
        f"Retry Interval: {scenario.coordinator.retry_interval_ms:g} ms",
        f"Transactions: {scenario.transactions}",
        "------------------------------------",
    ]
    return "\n".join(lines)


def format_results(result: ScenarioResult) -> str:
    lines = ["", "--- Results ---"]
    for tx in result.results:
        lines.append(
            f"Transaction {tx.index}: {tx.status} in {tx.elapsed * 1000:.1f} ms "
            f"(prepare sends: {tx.report.prepare_sends}, "
            f"acks: {len(tx.report.acknowledged)}/{len(tx.participant_states)})"
        )
        if tx.forced_vote_no:
            lines.append(f"  forced No: {', '.join(tx.forced_vote_no)}")
        if not tx.report.fully_acknowledged:
            lines.append(f"  unacknowledged: {', '.join(sorted(tx.report.unacknowledged))}")
        if not tx.safety_ok:
            lines.append(f"  SAFETY VIOLATION: {', '.join(tx.safety_violations)}")
    lines.append("")
    lines.append(str(result))
    return "\n".join(lines)


def cmd_run(args: argparse.Namespace) -> int:
    scenario = scenario_from_args(args)
    if not args.json:
        print(format_configuration(scenario))
        print("\n>>> Starting Transaction <<<")

    result = run_scenario(scenario)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(format_results(result))
    return 0


def cmd_study(args: argparse.Namespace) -> int:
    scenario = scenario_from_args(args)
    print(format_configuration(scenario))

    results = run_study(scenario, args.drop_rates, args.latencies)
    save_results(results, os.path.join(args.output, "study.json"))

    for point in results["points"]:
        print(
            f"latency {point['latency_ms']:g} ms, drop {point['drop_rate']:.2f}: "
            f"commit rate {point['commit_rate']:.0%}, "
            f"avg {point['latency']['avg'] * 1000:.1f} ms, "
            f"prepare sends {point['mean_prepare_sends']:.1f}"
        )

    if args.plot:
        for path in generate_study_visualizations(results, args.output):
            print(f"Wrote {path}")
    return 0


COMMANDS = {
    "run": cmd_run,
    "study": cmd_study,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        log.configure(args.verbosity)
    except ValueError as e:
        parser.error(str(e))

    try:
        return COMMANDS[args.command](args)
    except (ValidationError, ValueError, OSError) as e:
        log.cli.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())

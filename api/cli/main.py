"""Command-line interface for the tail assignment engine."""

import argparse
import logging
import json
import sys
from dataclasses import replace
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from data.generators.micro_fleet import generate_micro_fleet, print_instance_summary
from data.generators.small_fleet import (
    generate_small_fleet,
    print_instance_summary as print_small_summary
)
from assignment.config import AssignmentMethod
from assignment.refiner import SAProgress
from assignment.session import AssignmentSession
from assignment.solver.base import SolverError
from assignment.solver.local_mip import LocalMIPSolver
from assignment.solver.remote import RemoteSolverClient, SolverApiConfig


def setup_logging(level: str = "INFO", log_file: str = None) -> None:
    """Configure logging."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    handlers = [logging.StreamHandler()]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=handlers
    )


def load_instance(name: str, seed: int):
    """Generate a named instance and return it with its summary printer."""
    if name == "micro_fleet":
        return generate_micro_fleet(), print_instance_summary
    if name == "small_fleet":
        return generate_small_fleet(seed=seed), print_small_summary
    raise ValueError(f"Unknown instance '{name}'")


def build_solver(kind: str, config):
    """Exact solver backend for ``--solver``; None when not requested."""
    if kind == "local":
        return LocalMIPSolver(config)
    if kind == "remote":
        return RemoteSolverClient(SolverApiConfig.from_env())
    return None


def print_progress(progress: SAProgress) -> None:
    print(
        f"  iter {progress.iteration:>7}  cost {progress.current_cost:>10.0f}  "
        f"best {progress.best_cost:>10.0f}  T={progress.temperature:>8.1f}  "
        f"({progress.improvement:.1f}% better, {progress.elapsed_seconds:.1f}s)"
    )


def run(
    instance: str = "micro_fleet",
    method: str = "minimize",
    family_substitution: bool = False,
    refine: str = "none",
    solver: str = "none",
    mip_preset: str = "normal",
    seed: int = 7,
    verbose: bool = True,
    output_file: str = None
):
    """Run one assignment pipeline on a generated instance."""
    logger = logging.getLogger(__name__)

    # Generate instance
    logger.info(f"Generating {instance} instance...")
    (flights, aircraft, config), print_summary = load_instance(instance, seed)
    config = replace(
        config,
        method=AssignmentMethod(method),
        allow_family_substitution=family_substitution or config.allow_family_substitution
    )

    if verbose:
        print_summary(flights, aircraft, config)

    try:
        backend = build_solver(solver, config)
    except SolverError as e:
        logger.error(f"Cannot create {solver} solver: {e}")
        backend = None

    session = AssignmentSession(flights, aircraft, config, solver=backend)
    try:
        logger.info(f"Constructing {method} assignment...")
        session.construct()

        if refine != "none":
            logger.info(f"Refining with '{refine}' preset...")
            handle = session.start_refinement(
                refine,
                on_progress=print_progress if verbose else None,
                seed=seed
            )
            session.finish_refinement(handle)

        if backend is not None:
            logger.info(f"Running {solver} exact solver ({mip_preset})...")
            session.solve_exact(mip_preset)
    finally:
        session.close()

    result = session.result

    # Print result
    result.print_summary(session.flights)

    # Print verification
    print("\nPartition Verification:")
    print("-" * 40)
    for check, satisfied in result.verify_partition(session.flights).items():
        status = "PASS" if satisfied else "FAIL"
        print(f"  {check}: {status}")

    if session.notifications:
        print("\nNotifications:")
        for note in session.notifications:
            print(f"  [{note.level}] {note.message}")

    # Save result if requested
    if output_file:
        payload = result.to_dict()
        payload["active_method"] = session.active_method
        if session.last_refinement is not None:
            payload["refinement"] = session.last_refinement.to_dict()
        if session.last_solver_response is not None:
            payload["solver"] = session.last_solver_response.to_payload()

        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(payload, f, indent=2)
        logger.info(f"Result saved to {output_file}")

    return result


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Tail assignment with greedy construction, annealing and exact solving"
    )

    parser.add_argument(
        "--instance",
        type=str,
        default="micro_fleet",
        choices=["micro_fleet", "small_fleet"],
        help="Instance to solve (default: micro_fleet)"
    )

    parser.add_argument(
        "--method",
        type=str,
        default="minimize",
        choices=[m.value for m in AssignmentMethod],
        help="Constructor objective (default: minimize)"
    )

    parser.add_argument(
        "--family-sub",
        action="store_true",
        help="Allow same-family type substitution"
    )

    parser.add_argument(
        "--refine",
        type=str,
        default="none",
        choices=["none", "quick", "normal", "deep"],
        help="Simulated annealing preset (default: none)"
    )

    parser.add_argument(
        "--solver",
        type=str,
        default="none",
        choices=["none", "local", "remote"],
        help="Exact solver backend; remote reads MIP_SOLVER_URL (default: none)"
    )

    parser.add_argument(
        "--mip-preset",
        type=str,
        default="normal",
        choices=["quick", "normal", "deep"],
        help="Exact solver time/gap preset (default: normal)"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=7,
        help="Random seed for generated instances and annealing (default: 7)"
    )

    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file for result JSON"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Log file path"
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress verbose output"
    )

    args = parser.parse_args()

    # Setup logging
    setup_logging(args.log_level, args.log_file)

    run(
        instance=args.instance,
        method=args.method,
        family_substitution=args.family_sub,
        refine=args.refine,
        solver=args.solver,
        mip_preset=args.mip_preset,
        seed=args.seed,
        verbose=not args.quiet,
        output_file=args.output
    )


if __name__ == "__main__":
    main()

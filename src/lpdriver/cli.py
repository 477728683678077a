from __future__ import annotations

import argparse
import json
import logging
import random
import time
from pathlib import Path
from typing import List, Optional

from .instances import (
    LOADLP_EXTRA_COEFFICIENTS,
    LOADLP_EXTRA_ROW,
    generate_random_problem,
    loadlp_problem,
    problem_to_dict,
    random_cut,
)
from .model import ModelBuilder, ModelMutator
from .orchestrator import open_session
from .schemas import SolveOptions


def run_example(options: SolveOptions) -> None:
    rows, columns, matrix = loadlp_problem()
    instance = ModelBuilder.load(rows, columns, matrix, sense="min", name="lp")
    ModelBuilder.assign_names(instance, "row", ["c1", "c2", "c3", "c4"], 0, 3)
    ModelBuilder.assign_names(instance, "column", ["x", "y"], 0, 1)
    ModelMutator.change_sense(instance, "max")

    with open_session(options) as session:
        result = session.solve_cold(instance)
        print(f"The optimal objective value is {result.objective_value}")

        new_ordinal = ModelMutator.add_row(
            instance, LOADLP_EXTRA_ROW.sense, LOADLP_EXTRA_ROW.rhs, LOADLP_EXTRA_COEFFICIENTS
        )
        ModelBuilder.assign_names(instance, "row", [LOADLP_EXTRA_ROW.name], new_ordinal, new_ordinal)

        # the revised problem inherits dual feasibility from the original
        revised = session.solve_warm(instance)
        print(f"The revised optimal objective value is {revised.objective_value}")


def run_generate(args: argparse.Namespace) -> None:
    payload = [
        problem_to_dict(
            generate_random_problem(args.rows, args.columns, args.density, (args.seed or 0) + idx),
            name=f"random-{idx}",
        )
        for idx in range(args.count)
    ]
    text = json.dumps(payload, indent=2)
    if args.out:
        Path(args.out).write_text(text)
    else:
        print(text)


def run_bench(args: argparse.Namespace, options: SolveOptions) -> None:
    print("name,method,status,objective,iterations,time_ms")
    with open_session(options) as session:
        for seed in range(args.count):
            rng = random.Random(seed)
            problem = generate_random_problem(args.rows, args.columns, args.density, seed)
            warm = ModelBuilder.load(*problem, sense="max", name=f"random-{seed}")
            cold = ModelBuilder.load(*problem, sense="max", name=f"random-{seed}")
            session.solve_cold(warm)

            cuts = [random_cut(args.columns, rng, args.density) for _ in range(args.cuts)]
            for instance in (warm, cold):
                ModelMutator.add_rows(instance, [row for row, _ in cuts], [entries for _, entries in cuts])

            for label, instance, solve in (
                ("dual", warm, session.solve_warm),
                ("primal", cold, session.solve_cold),
            ):
                start = time.perf_counter()
                result = solve(instance)
                elapsed_ms = (time.perf_counter() - start) * 1000
                print(
                    f"{instance.name},{label},{result.status},{result.objective_value},"
                    f"{result.iterations},{elapsed_ms:.2f}"
                )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lpdriver", description="Sparse LP loading and incremental re-solves.")
    parser.add_argument("--engine", choices=["simplex", "highs"], default="simplex")
    parser.add_argument("--log-level", default="WARNING", help="Console log level")
    parser.add_argument("--log-file", type=Path, default=None, help="Write solver messages to this file")
    parser.add_argument("--max-iters", type=int, default=10_000)
    parser.add_argument("--time-limit", type=float, default=None, help="Seconds per solve")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("example", help="Solve the loadlp example, add a row and re-solve warm")

    gen = sub.add_parser("generate", help="Generate random feasible LP instances as JSON")
    gen.add_argument("--rows", type=int, default=3, help="Number of constraints")
    gen.add_argument("--columns", type=int, default=3, help="Number of variables")
    gen.add_argument("--density", type=float, default=0.5)
    gen.add_argument("--seed", type=int, default=None, help="Random seed")
    gen.add_argument("--count", type=int, default=1, help="Number of instances")
    gen.add_argument("--out", type=Path, default=None, help="Optional output file")

    bench = sub.add_parser("bench", help="Compare warm dual and cold primal re-solves")
    bench.add_argument("--rows", type=int, default=20)
    bench.add_argument("--columns", type=int, default=20)
    bench.add_argument("--density", type=float, default=0.4)
    bench.add_argument("--cuts", type=int, default=3, help="Rows appended before re-solving")
    bench.add_argument("--count", type=int, default=3, help="Number of random instances")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    options = SolveOptions(
        engine=args.engine,
        log_file=args.log_file,
        max_iters=args.max_iters,
        time_limit=args.time_limit,
    )

    if args.command == "example":
        run_example(options)
    elif args.command == "generate":
        run_generate(args)
    else:
        run_bench(args, options)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

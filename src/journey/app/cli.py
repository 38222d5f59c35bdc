from __future__ import annotations

import argparse
import sys

from journey.app.runner import run


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="journey-demo")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Run the scripted visitor journey")
    p_run.add_argument("--config", default="config/journey.yaml")

    args = parser.parse_args(argv)

    if args.cmd == "run":
        result = run(args.config)
        for op, outcome in result.steps:
            print(f"[{outcome.status}] {op}: {outcome.message}")
        counters = " ".join(f"{k}={v}" for k, v in result.metrics.items())
        print(f"session_id={result.session_id} user_id={result.user_id} {counters}")
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

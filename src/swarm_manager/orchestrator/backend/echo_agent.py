"""Local demo agent for sandbox integration tests."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

from swarm_manager.orchestrator.contracts import read_task_context


def main(argv: list[str] | None = None) -> int:
    """Echo the task brief into a completion report."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--task-context", required=True)
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--no-report", action="store_true")
    parser.add_argument("prompt", nargs="?", default="")
    args = parser.parse_args(argv)

    context = read_task_context(Path(args.task_context))
    print(f"echo agent started for {context.task_id}", flush=True)
    if args.sleep > 0:
        time.sleep(args.sleep)

    if not args.no_report:
        output_dir = Path(os.getenv("OUTPUT_DIR", context.output))
        output_dir.mkdir(parents=True, exist_ok=True)
        checklist = "\n".join(f"- [x] {item}" for item in context.checklist)
        report = (
            f"# Completion report: {context.title}\n\n"
            f"Task {context.task_id} ({context.task_type}) handled by "
            f"{os.getenv('AGENT_TYPE', 'echo')} in sandbox "
            f"{os.getenv('SANDBOX_ID', context.sandbox_id)}.\n\n"
            f"{checklist}\n"
        )
        (output_dir / "completion-report.md").write_text(report, "utf-8")

    if args.exit_code:
        print(f"echo agent exiting with {args.exit_code}", file=sys.stderr, flush=True)
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

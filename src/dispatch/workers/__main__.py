#!/usr/bin/env python3
"""CLI entry point for the scheduled trigger workers."""

import argparse
import asyncio
import sys

from dispatch.container import DispatchContainer
from dispatch.domain.value_objects import TriggerKind
from dispatch.workers.manager import SCHEDULED_KINDS, create_worker_manager
from shared.config import get_settings
from shared.observability.logger import configure_logging


async def run_workers(worker: str) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    container = DispatchContainer.from_settings(settings)

    kinds = SCHEDULED_KINDS if worker == "all" else (TriggerKind(worker),)
    manager = create_worker_manager(container, kinds)
    try:
        await manager.start_all()
        await manager.wait_for_shutdown()
    finally:
        await container.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Clinic notification dispatch workers")
    parser.add_argument(
        "worker",
        nargs="?",
        choices=["all", "reminder", "survey", "upsell"],
        default="all",
        help="Which trigger worker to run (default: all)",
    )
    args = parser.parse_args()

    try:
        asyncio.run(run_workers(args.worker))
    except KeyboardInterrupt:
        print("\nShutting down workers...")
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Powermeal Menu Assistant - Daily Dish Selection
===============================================

Main entry point for the Powermeal menu assistant.

Runs the daily selection pipeline:
1. Authenticates with the stored session refresh token (prompts if missing
   or rejected, persists the rotated token)
2. Fetches the account's diets
3. Discovers the days whose menu can still be chosen
4. For every open day, oldest first: AI recommendation, interactive
   confirmation, optional preference and menu writes

USAGE:
    python orchestrator.py                    # Choose dishes for open days
    python orchestrator.py stats --days 30    # Dish frequency report
    python orchestrator.py --set-token        # Replace the stored refresh token
    python orchestrator.py --show-config      # Print configuration and exit
    python orchestrator.py --help             # Show all options
"""

import argparse
import asyncio
import sys
from datetime import date
from typing import List, Optional

from config import STATS_DAYS, print_config_summary
from day_discovery import discover_open_days
from day_workflow import DayProcessingError, DayWorkflow
from diet_client import DietServiceClient, DietServiceError
from dish_stats import collect_dish_stats
from menu_models import TokenPair
from menu_oracle import MenuOracle, OracleError
from preferences import PreferenceStore, PreferencesError
from tools.console_ui import ConsoleUI
from tools.logging_utils import get_logger, setup_logging

logger = get_logger(__name__)


# =============================================================================
# PROGRESS DISPLAY UTILITIES
# =============================================================================

def print_error(step_name: str, error_message: str):
    """Print error banner."""
    logger.critical(f"❌ ERROR in {step_name}: {error_message}")
    print("\n" + "═" * 60, file=sys.stderr)
    print(f"❌ ERROR in {step_name}", file=sys.stderr)
    print("═" * 60, file=sys.stderr)
    print(f"\n{error_message}\n", file=sys.stderr)


# =============================================================================
# AUTHENTICATION
# =============================================================================

async def prompt_for_token(client: DietServiceClient, ui) -> TokenPair:
    """Ask for a refresh token until the service accepts one."""
    while True:
        candidate = await ui.ask_text("Enter your refresh token", allow_empty=False)
        try:
            return await client.refresh_token(candidate)
        except DietServiceError as e:
            logger.warning(f"⚠️ Refresh token rejected: {e}")
            ui.error(str(e))


async def authenticate(
    client: DietServiceClient,
    store: PreferenceStore,
    ui,
    force_prompt: bool = False,
) -> TokenPair:
    """
    Exchange the stored refresh token for an access token.

    The client is left holding the access token; the rotated refresh token
    returned by the service replaces the stored one.
    """
    stored = store.token()
    if stored is None:
        ui.say("Session refresh token is not set.")

    if stored is None or force_prompt:
        tokens = await prompt_for_token(client, ui)
    else:
        ui.status("Authenticating...")
        try:
            tokens = await client.refresh_token(stored)
        except DietServiceError as e:
            ui.clear_status()
            logger.warning(f"⚠️ Stored refresh token rejected: {e}")
            ui.error(str(e))
            tokens = await prompt_for_token(client, ui)

    store.save_token(tokens.refresh_token)
    client.set_token(tokens.token)
    logger.info("✅ Authenticated")
    return tokens


# =============================================================================
# COMMANDS
# =============================================================================

async def run_assistant(
    client: DietServiceClient,
    oracle: MenuOracle,
    store: PreferenceStore,
    ui,
    today: date,
    force_token_prompt: bool = False,
) -> int:
    await authenticate(client, store, ui, force_prompt=force_token_prompt)

    ui.status("Fetching diets...")
    diets = await client.fetch_diets()
    days = await discover_open_days(client, diets, store, today, ui=ui)

    if not days:
        ui.clear_status()
        ui.say("No days available to select menu")
        return 0

    workflow = DayWorkflow(client, oracle, store, ui)
    for day in days:
        await workflow.select_dishes_for_day(day, diets)
    return 0


async def run_stats(
    client: DietServiceClient,
    store: PreferenceStore,
    ui,
    today: date,
    days: int = STATS_DAYS,
) -> int:
    await authenticate(client, store, ui)

    ui.status("Fetching diets...")
    diets = await client.fetch_diets()
    stats = await collect_dish_stats(client, diets, today, days=days, ui=ui)

    for entry in stats:
        ui.say(str(entry))
    return 0


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AI-assisted daily dish selection for Powermeal diets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python orchestrator.py                    # Choose dishes for open days
  python orchestrator.py stats --days 14    # Dish frequency over 14 days
  python orchestrator.py --set-token        # Enter a new refresh token first
        """
    )

    parser.add_argument(
        "--set-token",
        action="store_true",
        help="Prompt for a new session refresh token before running"
    )

    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the configuration summary and exit"
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Choose dishes for every open day (default)")

    stats = subparsers.add_parser("stats", help="Count how often each dish was offered")
    stats.add_argument(
        "--days",
        type=int,
        default=STATS_DAYS,
        help=f"Number of days to look back, today included (default: {STATS_DAYS})"
    )

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main orchestration function - async for proper event loop management."""
    args = build_parser().parse_args(argv)
    setup_logging()

    if args.show_config:
        print_config_summary()
        return 0

    ui = ConsoleUI()
    store = PreferenceStore()
    today = date.today()

    try:
        async with DietServiceClient() as client:
            if args.command == "stats":
                return await run_stats(client, store, ui, today, days=args.days)
            return await run_assistant(
                client, MenuOracle(), store, ui, today, force_token_prompt=args.set_token
            )
    except DietServiceError as e:
        ui.clear_status()
        print_error(e.operation or "diet service", str(e))
    except OracleError as e:
        ui.clear_status()
        print_error("AI recommendation", str(e))
    except DayProcessingError as e:
        ui.clear_status()
        print_error("day processing", str(e))
    except PreferencesError as e:
        ui.clear_status()
        print_error("preferences", str(e))
    return 1


# =============================================================================
# ENTRY POINT
# =============================================================================

def cli() -> int:
    try:
        return asyncio.run(main())

    except KeyboardInterrupt:
        print("\n\n⚠️  Operation cancelled by user")
        return 130

    except Exception as e:
        print("\n" + "═" * 60)
        print("❌ UNEXPECTED ERROR")
        print("═" * 60)
        print(f"\n{str(e)}\n")

        # Print full traceback for debugging
        import traceback
        print("Full traceback:")
        traceback.print_exc()

        return 1


if __name__ == "__main__":
    sys.exit(cli())

"""
HLMM market maker - main entry point.

Usage:
    python -m hlmm.main config.json                 # quotes, fill model from config
    python -m hlmm.main config.json --dry-run       # quotes only, no simulated fills
    python -m hlmm.main config.json --coin ETH --fill-model instant
"""
import argparse
import asyncio
import signal

from .config import FILL_MODELS, load_config, validate_config
from .trading import MarketMakerBot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the HLMM signal-driven market maker against the Hyperliquid feed"
    )
    parser.add_argument("config", help="Path to configuration JSON file")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry-run mode: compute and print quotes but never report fills",
    )
    parser.add_argument("--coin", help="Override feed.coin")
    parser.add_argument("--fill-model", choices=FILL_MODELS, help="Override fill_model")
    parser.add_argument("--log-level", help="Override logging.level")
    return parser


def configure(args: argparse.Namespace):
    cfg = load_config(args.config)
    if args.coin:
        cfg.feed.coin = args.coin
    if args.fill_model:
        cfg.fill_model = args.fill_model
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    if args.dry_run:
        cfg.fill_model = "none"
    return validate_config(cfg)


async def _amain(argv=None):
    """Main async entry point."""
    args = build_parser().parse_args(argv)
    cfg = configure(args)

    if args.dry_run:
        print("⚠️  DRY RUN MODE ACTIVE ⚠️")
        print("No fills will be reported. Watching market and printing theoretical quotes...")
    else:
        print(f"🚀 Starting market maker on {cfg.feed.coin} (fill model: {cfg.fill_model})")
    print("=" * 60)

    bot = MarketMakerBot(cfg)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.create_task(bot.shutdown()))
        except NotImplementedError:
            pass

    try:
        await bot.run()
    except Exception as e:
        print(f"\n\n❌ Fatal error: {e}")
        raise
    finally:
        print("\nBot stopped.")


def main(argv=None):
    asyncio.run(_amain(argv))


if __name__ == "__main__":
    main()

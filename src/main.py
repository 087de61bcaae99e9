#!/usr/bin/env python3

"""
Job Applier - Main Entry Point
Searches job boards, stores what it finds, and applies within a daily quota
"""

import argparse
import logging
import sys
from config_loader import ConfigValidationError, load_config
from aggregator import JobAggregator
from applier import ApplicationLoop, start_of_today
from boards import AuthenticationError, get_boards
from browser import BrowserSession
from crawler import PaginatedCrawler
from job_store import JobStore, JobStoreError
from pacing import Pacer
from proxy_manager import ProxyManager
from run_metrics import RunMetrics

MODES = ("run", "search", "apply", "stats")


def setup_logging(config) -> None:
    """Configure logging for the application"""
    log_file = config.get_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    log_level = getattr(logging, config.get_log_level(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file}")


def display_config(config, mode: str) -> None:
    """Display loaded configuration"""
    logger = logging.getLogger(__name__)

    print("\n" + "="*60)
    print(f"🤖 JOB APPLIER - mode: {mode}")
    print("="*60)

    print("\n📋 SEARCH PARAMETERS:")
    keywords = config.get_keywords()
    for i, keyword in enumerate(keywords, 1):
        print(f"  {i}. {keyword}")

    print(f"\n📍 Locations: {', '.join(config.get_locations())} (radius {config.get_radius()}mi)")
    print(f"🗓️  Max days old: {config.get_max_days_old()}")
    print(f"📄 Max pages per search: {config.get_max_pages()}")
    print(f"🌐 Job boards: {', '.join(config.get_job_boards())}")

    print(f"\n⚙️  BROWSER SETTINGS:")
    print(f"  Headless mode: {config.is_headless()}")
    print(f"  Proxy: {'enabled (' + config.get_proxy_provider() + ')' if config.is_proxy_enabled() else 'disabled'}")
    print(f"  Parallel crawls: {config.get_max_workers()}")

    print(f"\n📨 APPLICATIONS:")
    print(f"  Daily quota: {config.get_daily_quota()}")
    print(f"  Dry run: {config.is_dry_run()}")

    print("\n" + "="*60 + "\n")

    logger.info(f"Config validated: {len(keywords)} keywords configured")


def print_stats(store: JobStore) -> None:
    stats = store.stats()
    print(f"📊 Stored jobs: {stats.total} (applied {stats.applied}, not applied {stats.not_applied})")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Job discovery and application automation")
    parser.add_argument(
        "mode",
        nargs="?",
        default="run",
        choices=MODES,
        help="run = search then apply (default)",
    )
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to config YAML",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch details but never submit applications",
    )
    return parser.parse_args(argv)


def run_session(config, store: JobStore, mode: str, dry_run: bool, metrics: RunMetrics) -> None:
    logger = logging.getLogger(__name__)
    pacer = Pacer()
    proxy_manager = ProxyManager.from_config(config)
    boards = get_boards(config, pacer=pacer)
    if not boards:
        raise ConfigValidationError("No supported job boards configured in search.job_boards")

    crawler = PaginatedCrawler.from_config(config, pacer=pacer, proxy_manager=proxy_manager, metrics=metrics)
    aggregator = JobAggregator(
        crawler,
        store,
        max_workers=config.get_max_workers(),
        session_factory=lambda: BrowserSession(config, proxy_manager),
        max_days_old=config.get_max_days_old(),
        max_pages=config.get_max_pages(),
        metrics=metrics,
    )
    for board in boards:
        aggregator.add_board(board)

    storage_state = config.get_storage_state_path()
    with BrowserSession(config, proxy_manager, storage_state=storage_state) as session:
        if mode in ("run", "apply") and not dry_run:
            for board in boards:
                if not board.login(session.page):
                    raise AuthenticationError(f"Login to {board.name} failed")
            session.save_storage_state()

        if mode in ("run", "search"):
            for keyword in config.get_keywords():
                print(f"\n🔍 Searching '{keyword}' in {len(config.get_locations())} location(s)")
                found = aggregator.search(session, keyword, config.get_locations(), config.get_radius())
                print(f"   ✓ {len(found)} unique listings")

        if mode in ("run", "apply"):
            quota = config.get_daily_quota()
            already = store.count_successful_since(start_of_today())
            remaining = max(quota - already, 0)
            print(f"\n📨 Applying (quota {quota}, already submitted today {already})")
            if remaining == 0:
                logger.info("Daily quota already used up")
                return
            loop = ApplicationLoop(
                {board.name: board for board in boards},
                session,
                store,
                pacer,
                dry_run=dry_run,
                metrics=metrics,
            )
            submitted = loop.run(store.find_unapplied(), quota, already)
            label = "simulated" if dry_run else "submitted"
            print(f"   ✓ {submitted} applications {label}")


def main(argv=None) -> int:
    """Main execution function"""
    print("\n🚀 Starting Job Applier...")
    args = parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"❌ Error: {e}")
        print("Copy config/settings.example.yaml to config/settings.yaml first!")
        return 1
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        return 1

    setup_logging(config)
    logger = logging.getLogger(__name__)
    display_config(config, args.mode)

    dry_run = args.dry_run or config.is_dry_run()
    if args.mode in ("run", "apply") and not dry_run:
        try:
            config.validate_credentials("indeed")
        except ConfigValidationError as e:
            print(f"❌ {e}")
            return 1

    try:
        store = JobStore(config.get_database_path())
    except JobStoreError as e:
        print(f"❌ {e}")
        logger.error("Job store unavailable: %s", e)
        return 1

    metrics = RunMetrics(mode=args.mode)
    try:
        if args.mode == "stats":
            print_stats(store)
            return 0
        run_session(config, store, args.mode, dry_run, metrics)

        print("\n" + "="*60)
        print("✅ RUN COMPLETE")
        print("="*60)
        print_stats(store)
        for key, value in metrics.summary().items():
            print(f"  {key.replace('_', ' ')}: {value}")
        print("="*60 + "\n")
        logger.info("Run complete: %s", metrics.counters)
        return 0
    except AuthenticationError as e:
        print(f"❌ {e}")
        logger.error("Aborting run: %s", e)
        return 1
    except ConfigValidationError as e:
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted; stored results are kept")
        print("\n⚠️  Interrupted")
        return 130
    finally:
        metrics.finish()
        if args.mode != "stats":
            path = metrics.write_json(template=config.get_metrics_template())
            logger.info("Run metrics written to %s", path)
        store.close()


if __name__ == "__main__":
    sys.exit(main())

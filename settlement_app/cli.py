"""
Settlement processor command line

Usage:
    settlement-processor run                       # Run the reconciliation loop
    settlement-processor run --once                # Process one batch and exit
    settlement-processor -v run --interval 10      # Custom interval, debug logging
    settlement-processor inspect 0xabc...          # Resolve one tx without writing
    settlement-processor report --hours 24         # Profit summary of resolved trades
    settlement-processor init-db                   # Create the trades table
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from .config.settings import ProcessorSettings
from .logging_config import get_logger, setup_logging
from .services.endpoint_resolver import EndpointResolver
from .services.errors import SettlementError
from .services.notifier import TelegramNotifier
from .services.onchain_fetcher import SettlementResolver, TransactionFetcher
from .services.price_service import NativePriceResolver
from .services.profit_report import build_trade_frame, format_report, summarize_profit
from .services.settlement import TradeDirection, compute_profit, onchain_value_for
from .services.trade_processor import TradeProcessor
from .services.trade_store import TradeStore

logger = get_logger('cli')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='settlement-processor',
        description='Resolve on-chain settlement values and profit for pending trades',
    )
    parser.add_argument('--env-file', type=str, help='Load environment from this .env file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    run = sub.add_parser('run', help='Run the reconciliation loop')
    run.add_argument('--interval', type=float, help='Seconds between batches (default: PROCESS_INTERVAL_SECONDS)')
    run.add_argument('--batch-size', type=int, help='Max trades per batch (default: MAX_TRADES_PER_BATCH)')
    run.add_argument('--once', action='store_true', help='Process one batch and exit')

    inspect = sub.add_parser('inspect', help='Resolve one transaction without writing anything')
    inspect.add_argument('tx_hash', help='Transaction hash')
    inspect.add_argument('--direction', choices=[d.value for d in TradeDirection],
                         help='Trade direction (default: buy_onsite_sell_onchain)')
    inspect.add_argument('--onsite', type=Decimal, help='Onsite USD value, to compute profit')

    report = sub.add_parser('report', help='Profit summary of resolved trades')
    report.add_argument('--hours', type=float, help='Only trades from the last N hours')

    sub.add_parser('init-db', help='Create the trades table')
    return parser


def _open_store(settings: ProcessorSettings) -> TradeStore:
    store = TradeStore(settings.database_url)
    store.check_connection()
    logger.info("[Database] Connected")
    return store


def cmd_run(args, settings: ProcessorSettings) -> int:
    if args.interval is not None:
        settings.process_interval = args.interval
    if args.batch_size is not None:
        settings.batch_size = args.batch_size
    try:
        settings.validate()
    except ValueError as e:
        logger.critical(f"[Fatal] Invalid configuration: {e}")
        return 1

    try:
        store = _open_store(settings)
    except Exception as e:
        logger.critical(f"[Fatal] Cannot connect to database {settings.database_url}: {e}")
        return 1

    resolver = EndpointResolver.from_settings(settings)
    processor = TradeProcessor.from_settings(
        settings,
        store=store,
        fetcher=TransactionFetcher(resolver),
        price_resolver=NativePriceResolver.from_settings(settings),
        notifier=TelegramNotifier.from_settings(settings),
    )

    if args.once:
        result = processor.tick()
        processor.shutdown()
        if result is not None and result.storage_error:
            return 1
        return 0

    processor.install_signal_handlers()
    processor.run()
    return 0


def cmd_inspect(args, settings: ProcessorSettings) -> int:
    resolver = SettlementResolver(
        TransactionFetcher(EndpointResolver.from_settings(settings)),
        NativePriceResolver.from_settings(settings),
    )
    try:
        settlement, quote, fetched = resolver.fetch_transaction_data(args.tx_hash)
    except SettlementError as e:
        kind = "transient" if e.transient else "permanent"
        print(f"[!] {type(e).__name__} ({kind}): {e}")
        return 1

    direction = TradeDirection.parse(args.direction)
    onchain_value = onchain_value_for(direction, settlement)
    output = {
        'tx_hash': args.tx_hash,
        'endpoint': fetched.endpoint_url,
        'sender': fetched.sender,
        'direction': direction.value,
        'price': quote.to_dict(),
        'settlement': settlement.to_dict(),
        'onchain_usd_value': float(onchain_value),
    }
    if args.onsite is not None:
        profit = compute_profit(direction, args.onsite, onchain_value, settlement.gas_used_usd)
        output['raw_profit_usd'] = float(profit.raw_profit)
        output['profit_with_gas_usd'] = float(profit.profit_with_gas)

    print(json.dumps(output, indent=2))
    return 0


def cmd_report(args, settings: ProcessorSettings) -> int:
    try:
        store = _open_store(settings)
    except Exception as e:
        logger.critical(f"[Fatal] Cannot connect to database {settings.database_url}: {e}")
        return 1

    since = None
    if args.hours:
        since = datetime.now(timezone.utc) - timedelta(hours=args.hours)
    try:
        frame = build_trade_frame(store.select_resolved(since=since))
    finally:
        store.close()

    print(format_report(summarize_profit(frame), since=since))
    return 0


def cmd_init_db(args, settings: ProcessorSettings) -> int:
    try:
        store = _open_store(settings)
    except Exception as e:
        logger.critical(f"[Fatal] Cannot connect to database {settings.database_url}: {e}")
        return 1
    store.create_schema()
    store.close()
    print(f"[+] Schema created at {settings.database_url}")
    return 0


COMMANDS = {
    'run': cmd_run,
    'inspect': cmd_inspect,
    'report': cmd_report,
    'init-db': cmd_init_db,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO

    # Settings load the .env file; logging reads SETTLEMENT_DEBUG from them
    try:
        settings = ProcessorSettings.from_env(args.env_file)
    except ValueError as e:
        setup_logging(level=level, debug=args.verbose)
        logger.critical(f"[Fatal] Invalid configuration: {e}")
        return 1

    setup_logging(level=level, debug=args.verbose or settings.debug)
    return COMMANDS[args.command](args, settings)


if __name__ == '__main__':
    sys.exit(main())

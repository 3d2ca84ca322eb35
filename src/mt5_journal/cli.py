from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from mt5_journal.config.app_config import load_app_config, resolve_config_path
from mt5_journal.ingest.mt5_html import ReportParseError, load_report
from mt5_journal.models import Trade
from mt5_journal.reconstruct.ordering import sort_descending


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Import trades from an MT5 Trade History Report (HTML).")
    parser.add_argument("report_path", type=Path, help="Path to the exported MT5 report (.html/.htm).")
    parser.add_argument("--config", type=Path, default=None, help="Path to app.toml.")
    parser.add_argument(
        "--initial-balance",
        type=float,
        default=None,
        help="Starting balance; derived from the report balance when omitted.",
    )
    parser.add_argument("--out", type=Path, default=None, help="Write trades to a file instead of stdout.")
    parser.add_argument("--verbose", action="store_true", help="Log skipped rows and parser decisions.")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    app_config = load_app_config(resolve_config_path(args.config))
    try:
        result = load_report(
            args.report_path,
            clock=app_config.session_clock(),
            assumed_rr=app_config.analytics.assumed_rr,
            encodings=app_config.imports.encodings,
        )
    except OSError as exc:
        print(f"Cannot read {args.report_path}: {exc}", file=sys.stderr)
        return 2
    except ReportParseError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    if result.skipped:
        print(f"Skipped {result.skipped} position rows during import.", file=sys.stderr)

    trades = sort_descending(result.trades)
    total = sum(trade.profit_loss for trade in trades)
    initial_balance = args.initial_balance
    if initial_balance is None:
        initial_balance = app_config.analytics.initial_balance or (result.balance - total if result.balance else 0.0)

    output = ["date pair direction lot entry close session rr commission swap pnl_net"]
    output.extend(_format_trade(trade) for trade in trades)
    output.append("")
    output.append(f"trades {len(trades)}")
    output.append(f"net_pnl {total:.2f}")
    output.append(f"balance {result.balance:.2f}")
    output.append(f"initial_balance {initial_balance:.2f}")

    if args.out is None:
        for line in output:
            print(line)
    else:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text("\n".join(output) + "\n", encoding="utf-8")

    return 0


def _format_trade(trade: Trade) -> str:
    when = trade.close_time or trade.open_time or trade.date
    close_price = "na" if trade.close_price is None else f"{trade.close_price:.6g}"
    return (
        f"{when.replace(' ', 'T')} {trade.pair} {trade.direction} {trade.lot_size:.6g} "
        f"{trade.entry:.6g} {close_price} {trade.session.replace(' ', '_')} {trade.rr_ratio:.2f} "
        f"{trade.commission:.2f} {trade.swap:.2f} {trade.profit_loss:.2f}"
    )


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from mt5_journal.config.app_config import load_app_config, resolve_config_path
from mt5_journal.ingest.mt5_html import ReportParseError, load_report
from mt5_journal.metrics.summary import AnalyticsReport, analytics_to_dict, compute_analytics


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Compute trading analytics from an MT5 report.")
    parser.add_argument("report_path", type=Path, help="Path to the exported MT5 report (.html/.htm).")
    parser.add_argument("--config", type=Path, default=None, help="Path to app.toml.")
    parser.add_argument("--json", action="store_true", help="Print JSON output.")
    parser.add_argument("--out", type=Path, default=None, help="Write output to a file instead of stdout.")
    parser.add_argument("--initial-balance", type=float, default=None, help="Starting account balance.")
    parser.add_argument("--target-profit", type=float, default=None, help="Profit target in account currency.")
    parser.add_argument("--max-dd", type=float, default=None, help="Allowed max drawdown percent.")
    parser.add_argument("--max-daily-dd", type=float, default=None, help="Allowed max daily drawdown percent.")
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

    thresholds = app_config.thresholds()
    if args.target_profit is not None:
        thresholds = replace(thresholds, target_profit=args.target_profit)
    if args.max_dd is not None:
        thresholds = replace(thresholds, max_drawdown_pct=args.max_dd)
    if args.max_daily_dd is not None:
        thresholds = replace(thresholds, max_daily_drawdown_pct=args.max_daily_dd)

    initial_balance = args.initial_balance
    if initial_balance is None:
        initial_balance = app_config.analytics.initial_balance

    report = compute_analytics(
        result.trades,
        initial_balance,
        thresholds,
        account_balance=result.balance or None,
    )

    if args.json or (args.out is not None and args.out.suffix.lower() == ".json"):
        payload = analytics_to_dict(report)
        payload["balance"] = result.balance
        payload["skipped_rows"] = result.skipped
        text = json.dumps(payload, indent=2, sort_keys=True)
    else:
        text = _format_report(report)

    if args.out is None:
        print(text)
    else:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(text + "\n", encoding="utf-8")

    return 0


def _format_report(report: AnalyticsReport) -> str:
    lines = [
        f"total_trades {report.total_trades}",
        f"wins {report.wins}",
        f"losses {report.losses}",
        f"breakevens {report.breakevens}",
        f"win_rate {_format_float(report.win_rate)}",
        f"profit_factor {_format_float(report.profit_factor)}",
        f"expectancy {_format_float(report.expectancy)}",
        f"avg_rr {_format_float(report.avg_rr)}",
        f"avg_win {_format_float(report.avg_win)}",
        f"avg_loss {_format_float(report.avg_loss)}",
        f"largest_win {_format_float(report.largest_win)}",
        f"largest_loss {_format_float(report.largest_loss)}",
        f"win_streak {report.win_streak}",
        f"loss_streak {report.loss_streak}",
        f"max_consecutive_wins {report.max_consecutive_wins}",
        f"max_consecutive_losses {report.max_consecutive_losses}",
        f"total_profit_loss {_format_float(report.total_profit_loss)}",
        f"initial_balance {_format_float(report.initial_balance)}",
        f"current_balance {_format_float(report.current_balance)}",
        f"max_drawdown_pct {_format_float(report.max_drawdown_pct)}",
        f"max_daily_drawdown_pct {_format_float(report.max_daily_drawdown_pct)}",
    ]
    if report.thresholds is not None:
        lines.append(f"profit_target_pct {_format_float(report.thresholds.profit_target_pct)}")
        lines.append(f"drawdown_usage_pct {_format_float(report.thresholds.drawdown_usage_pct)}")
        lines.append(f"daily_drawdown_usage_pct {_format_float(report.thresholds.daily_drawdown_usage_pct)}")
    if report.score is not None:
        lines.append(f"performance_score {_format_float(report.score.score)}")
    for row in report.instruments:
        lines.append(f"instrument {row.key} trades={row.trades} net={_format_float(row.net_profit)}")
    for row in report.sessions:
        lines.append(f"session {row.key.replace(' ', '_')} trades={row.trades} net={_format_float(row.net_profit)}")
    return "\n".join(lines)


def _format_float(value: float | None) -> str:
    return "na" if value is None else f"{value:.6g}"


if __name__ == "__main__":
    raise SystemExit(main())

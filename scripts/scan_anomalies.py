#!/usr/bin/env python3
"""
Scan a market feed snapshot for unusual activity.

Reads a JSON file with ``trades``, ``orderBooks`` and ``markets`` lists,
runs every detector family once and prints the hottest markets with their
anomalies.

Usage:
    python scripts/scan_anomalies.py --input feed.json
    python scripts/scan_anomalies.py --input feed.json --config my.yaml --min-severity high+ --json
"""
from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config.env_loader import load_env
from config.settings_loader import load_detection_config, load_settings, load_settings_file
from core.exceptions import SurveillanceError, get_error_code
from core.structured_log import jlog
from surveillance.engine import AnomalyEngine
from surveillance.ingest import load_feed
from surveillance.ranking import filter_min_severity, sort_by_severity, top_markets
from surveillance.scoring import get_severity_band
from surveillance.types import AnomalyDetectionResult, AnomalyEvent, SeverityBand, Trade


def _resolve_now(explicit: Optional[int], trades_by_market: Dict[str, List[Trade]]) -> int:
    """Explicit --now, else the latest trade in the feed, else wall clock."""
    if explicit is not None:
        return explicit
    latest = [t.timestamp for trades in trades_by_market.values() for t in trades]
    return max(latest) if latest else int(time.time() * 1000)


def _print_report(result: AnomalyDetectionResult, anomalies: Sequence[AnomalyEvent], engine: AnomalyEngine,
                  limit: int, min_band: Optional[SeverityBand]) -> None:
    hot = top_markets(result.heat_scores, limit=limit, min_band=min_band, config=engine.config)
    print(f"[SCAN] {len(result.heat_scores)} markets, {len(result.anomalies)} anomalies")
    if not hot:
        print("[SCAN] No markets above the band floor")
    for heat in hot:
        band = get_severity_band(heat.score, engine.config)
        print(f"  {heat.market_id:<24} {heat.score:6.1f}  {band.value}")
        for a in anomalies:
            if a.market_id == heat.market_id:
                print(f"    - [{a.severity.value}] {a.label}: {a.message}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description='Scan a market feed snapshot for anomalies')
    ap.add_argument('--input', required=True, help='JSON feed with trades, orderBooks and markets')
    ap.add_argument('--config', default=None, help='YAML settings file (defaults to config/base.yaml)')
    ap.add_argument('--dotenv', default='.env', help='Path to .env file')
    ap.add_argument('--now', type=int, default=None, help='Scan time in epoch ms (default: latest trade)')
    ap.add_argument('--window-ms', type=int, default=None, help='Scan window in ms')
    ap.add_argument('--ts-unit', choices=['ms', 's'], default=None, help='Unit of feed timestamps')
    ap.add_argument('--strict', action='store_true', help='Fail on malformed feed records')
    ap.add_argument('--min-severity', choices=['all', 'medium+', 'high+', 'extreme'], default='all')
    ap.add_argument('--top', type=int, default=None, help='Number of markets to print')
    ap.add_argument('--json', action='store_true', help='Print the full result as JSON')
    args = ap.parse_args(argv)

    load_env(Path(args.dotenv))

    try:
        settings = load_settings_file(args.config) if args.config else load_settings()
        config = load_detection_config(settings)

        scan = settings.get('scan') or {}
        report = settings.get('report') or {}
        unit = args.ts_unit or scan.get('timestamp_unit', 'ms')
        strict = args.strict or bool(scan.get('strict_ingest', False))
        window_ms = args.window_ms or int(scan.get('window_ms') or config.windows.short)
        limit = args.top if args.top is not None else int(report.get('top_markets', 10))
        min_band = report.get('min_band')

        payload = json.loads(Path(args.input).read_text(encoding='utf-8'))
        trades, books, metadata = load_feed(payload, timestamp_unit=unit, strict=strict)
        now = _resolve_now(args.now, trades)

        engine = AnomalyEngine(config=config)
        result = engine.scan(now, window_ms, trades, books, metadata)
    except SurveillanceError as e:
        jlog('anomaly_scan_failed', level='ERROR', echo=False, error=e.to_dict())
        print(f"[SCAN] ERROR - {e}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as e:
        jlog('anomaly_scan_failed', level='ERROR', echo=False, error=str(e), code=get_error_code(e))
        print(f"[SCAN] ERROR - cannot read {args.input}: {e}", file=sys.stderr)
        return 2

    anomalies = filter_min_severity(sort_by_severity(result.anomalies), args.min_severity)

    if args.json:
        out = result.to_dict()
        out['anomalies'] = [a.to_dict() for a in anomalies]
        for heat in out['heatScores']:
            heat['band'] = get_severity_band(heat['score'], engine.config).value
        print(json.dumps(out, indent=2))
    else:
        _print_report(result, anomalies, engine, limit, SeverityBand(min_band) if min_band else None)

    hottest = result.heat_scores[0] if result.heat_scores else None
    jlog(
        'anomaly_scan',
        echo=False,
        now=now,
        window_ms=window_ms,
        markets=len(result.heat_scores),
        anomalies=len(result.anomalies),
        reported=len(anomalies),
        hottest_market=hottest.market_id if hottest else None,
        hottest_score=round(hottest.score, 2) if hottest else None,
        config_source=args.config or 'default',
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())

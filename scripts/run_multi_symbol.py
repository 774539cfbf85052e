#!/usr/bin/env python3
"""
Optimize workflows for several instruments in concurrent batches.

Usage:
    python scripts/run_multi_symbol.py --symbols AAPL,TSLA,NVDA --rounds 3 --max-concurrent 2
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path as _P

import sys
sys.path.insert(0, str(_P(__file__).resolve().parents[1]))

from config.env_loader import load_env
from core.exceptions import ConfigurationError
from optimization.session import create_session


def main() -> int:
    ap = argparse.ArgumentParser(description='Multi-instrument workflow optimization')
    ap.add_argument('--symbols', type=str, default='AAPL,TSLA,NVDA', help='Comma-separated tickers')
    ap.add_argument('--rounds', type=int, default=None)
    ap.add_argument('--max-concurrent', type=int, default=None)
    ap.add_argument('--mode', type=str, choices=['catalog', 'transform'], default=None)
    ap.add_argument('--seed', type=int, default=None)
    ap.add_argument('--no-persist', action='store_true', default=False)
    ap.add_argument('--dotenv', type=str, default='./.env')
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    dotenv = _P(args.dotenv)
    if dotenv.exists():
        load_env(dotenv)

    symbols = [s.strip() for s in args.symbols.split(',') if s.strip()]
    try:
        session = create_session(
            symbols,
            rounds=args.rounds,
            mode=args.mode,
            max_concurrent=args.max_concurrent,
            seed=args.seed,
            persist=not args.no_persist,
        )
    except ConfigurationError as e:
        print(f'Configuration error: {e}')
        return 2

    schedule = session.run()
    print('=' * 60)
    print(f'{schedule.success_count}/{schedule.total} instruments succeeded '
          f'in {schedule.duration_seconds:.1f}s ({len(schedule.batches)} batches)')
    for outcome in schedule.outcomes:
        if outcome.succeeded:
            r = outcome.result
            print(f'  {outcome.instrument:<6} {r.best_variant.name:<28} {r.best_score:6.2%}')
        elif outcome.skipped:
            print(f'  {outcome.instrument:<6} skipped')
        else:
            print(f'  {outcome.instrument:<6} FAILED: {outcome.error}')
    print(f'Average score (successes): {schedule.average_score:.2%}')
    best = schedule.global_best
    if best:
        print(f'Global best: {best["instrument"]} {best["variant"]} ({best["score"]:.2%})')
    return 0 if schedule.success_count else 1


if __name__ == '__main__':
    sys.exit(main())

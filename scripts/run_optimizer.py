#!/usr/bin/env python3
"""
Optimize the analysis workflow for a single instrument.

Runs the round loop (tree search, generation, walk-forward evaluation,
stochastic acceptance) and prints the best workflow found. Artifacts are
written under the configured storage root.

Usage:
    python scripts/run_optimizer.py --symbol AAPL --rounds 5
    python scripts/run_optimizer.py --symbol TSLA --rounds 3 --mode transform --seed 7
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
    ap = argparse.ArgumentParser(description='Workflow optimization for one instrument')
    ap.add_argument('--symbol', type=str, default='AAPL')
    ap.add_argument('--rounds', type=int, default=None, help='Rounds (default: optimizer.rounds)')
    ap.add_argument('--mode', type=str, choices=['catalog', 'transform'], default=None)
    ap.add_argument('--seed', type=int, default=None)
    ap.add_argument('--no-persist', action='store_true', default=False)
    ap.add_argument('--dotenv', type=str, default='./.env')
    ap.add_argument('-v', '--verbose', action='store_true', default=False)
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    dotenv = _P(args.dotenv)
    if dotenv.exists():
        loaded = load_env(dotenv)
        print('Loaded %d env vars from %s' % (len(loaded), dotenv))

    try:
        session = create_session(
            [args.symbol],
            rounds=args.rounds,
            mode=args.mode,
            max_concurrent=1,
            seed=args.seed,
            persist=not args.no_persist,
        )
    except ConfigurationError as e:
        print(f'Configuration error: {e}')
        return 2

    schedule = session.run()
    symbol = session.instruments[0]
    if symbol in schedule.failures:
        print(f'{symbol}: optimization failed: {schedule.failures[symbol]}')
        return 1

    result = schedule.results[symbol]
    print('=' * 60)
    print(f'{symbol} - {result.rounds_completed}/{result.rounds_requested} rounds '
          f'in {result.duration_seconds:.1f}s')
    print(f'Initial score: {result.initial_score:.2%}')
    print(f'Best workflow: {result.best_variant.name} ({result.best_score:.2%})')
    print(f'Current workflow: {result.current_variant.name} ({result.current_score:.2%})')
    print('-' * 60)
    for record in result.history:
        if record.is_error:
            print(f'  round {record.round:>2}: ERROR {record.error}')
            continue
        flag = 'accepted' if record.accepted else 'rejected'
        print(f'  round {record.round:>2}: {record.variant:<28} {record.score:6.2%} '
              f'{flag:<9} best {record.best_score:6.2%}')
    return 0


if __name__ == '__main__':
    sys.exit(main())

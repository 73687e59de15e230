#!/usr/bin/env python3
"""
Banker CLI
==========

Usage:
    banker create 100
    banker balances
    banker max-balance
    banker seed <address>
    banker seed-independent <address>
    banker fanout [--rounds N]
    banker sustained <count> [--cycles N]
    banker collect <address>

Global options pick the key file directory (``--dir``), the worker count
(``--threads``, 0 = all cores), a YAML config file and dry-run mode.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from rich.panel import Panel

from . import __version__
from .bank import Banker
from .config import ConfigManager
from .display import render_report
from .utils import BankerError, console, setup_logging

# Commands that never talk to the ledger
OFFLINE_COMMANDS = {"create", "init-config"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="banker",
        description="Manage and move funds across a pool of wallets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create 100 wallets in ./wallets
  banker --dir ./wallets create 100

  # Fund every wallet from the first one, 50 at a time per funded wallet
  banker --dir ./wallets seed-independent <address>

  # Keep 10 payments per block going around the pool
  banker --dir ./wallets sustained 10
        """
    )

    # Global options
    parser.add_argument('--dir', help='Directory holding the wallet key files')
    parser.add_argument('--threads', type=int, help='Worker threads (0 = all logical cores)')
    parser.add_argument('--config', default='./banker_config.yaml', help='Path to YAML config')
    parser.add_argument('--dry-run', action='store_true', help='Sign transactions without broadcasting them')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Log level')
    parser.add_argument('--metrics-out', help='Write payment latency metrics to this JSON file')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('init-config', help='Write the effective configuration to --config (no password)')

    create_parser = subparsers.add_parser('create', help='Create new wallet key files')
    create_parser.add_argument('count', type=int, help='Number of wallets')

    subparsers.add_parser('balances', help='Show the balance of every wallet')
    subparsers.add_parser('max-balance', help='Show the wallet with the highest balance')

    collect_parser = subparsers.add_parser('collect', help='Sweep every wallet into one address')
    collect_parser.add_argument('address', help='Target address (must be in the pool)')

    fanout_parser = subparsers.add_parser('fanout', help='Every wallet pays every other wallet, repeatedly')
    fanout_parser.add_argument('--rounds', type=int, help='Stop after this many rounds')

    seed_parser = subparsers.add_parser('seed', help='Split one wallet across all the others')
    seed_parser.add_argument('address', help='Seed address (must be in the pool)')

    pyramid_parser = subparsers.add_parser(
        'seed-independent', help='Seed the pool with every funded wallet seeding in turn'
    )
    pyramid_parser.add_argument('address', help='Seed address (must be in the pool)')

    sustained_parser = subparsers.add_parser('sustained', help='Forward one bone around the pool, one batch per block')
    sustained_parser.add_argument('count', type=int, help='Payments per block')
    sustained_parser.add_argument('--cycles', type=int, help='Stop after this many full cycles')

    return parser


def run_command(banker: Banker, args) -> int:
    """Dispatch one parsed command. Returns the exit status."""
    if args.command == 'create':
        banker.create_wallets(args.count)
        return 0
    if args.command == 'balances':
        banker.print_all_balances()
        return 0
    if args.command == 'max-balance':
        return 0 if banker.max_balance() else 1

    if args.command == 'fanout':
        report = banker.fan_out(rounds=args.rounds)
    elif args.command == 'seed':
        report = banker.seed(args.address)
    elif args.command == 'seed-independent':
        report = banker.seed_independent(args.address)
    elif args.command == 'sustained':
        report = banker.sustained(args.count, cycles=args.cycles)
    elif args.command == 'collect':
        report = banker.collect(args.address)
    else:
        raise ValueError(f"Unknown command: {args.command}")

    render_report(args.command, report, console)
    finish(banker, args)
    return 0


def finish(banker: Banker, args):
    """Print and optionally save the payment latency summary."""
    if not banker.metrics.metrics:
        return
    banker.metrics.print_summary(console)
    if args.metrics_out:
        banker.metrics.save_to_file(args.metrics_out)
        console.print(f"[dim]Metrics written to {args.metrics_out}[/dim]")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    banker = None
    try:
        config = ConfigManager(Path(args.config)).load_config({
            'working_dir': args.dir,
            'threads': args.threads,
            'dry_run': True if args.dry_run else None,
            'log_level': args.log_level,
        })
        setup_logging(config.log_level, config.log_file)

        if args.command == 'init-config':
            ConfigManager(Path(args.config)).save_config(config)
            console.print(f"[green]✓ Configuration written to {args.config}[/green]")
            return 0

        config.validate(require_ledger=args.command not in OFFLINE_COMMANDS)

        banker = Banker(config)
        console.print(f"\n{banker}\n")
        if config.dry_run:
            console.print(Panel("[yellow]DRY RUN: transactions are signed but not broadcast[/yellow]"))
        return run_command(banker, args)

    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped by user[/yellow]")
        if banker is not None:
            finish(banker, args)
        return 130
    except (BankerError, ValueError) as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1


if __name__ == '__main__':
    sys.exit(main())

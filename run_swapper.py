"""
run_swapper.py - Entry point when running from a source checkout.

    python run_swapper.py pool <pool_id>
    python run_swapper.py swap <pool_id> <amount> <direction>
"""

import sys

# Add src to path for imports
sys.path.insert(0, 'src')


def main() -> int:
    from rayswap.cli import main as cli_main

    return cli_main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())

"""Entry point for python -m momentum_sync"""
import sys

from momentum_sync.cli.main import main

sys.exit(main())

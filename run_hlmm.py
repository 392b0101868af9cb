#!/usr/bin/env python3
"""
HLMM - Hyperliquid signal-driven market maker

Usage:
    pip install -e .
    python run_hlmm.py config.json [--dry-run]
"""
from hlmm.main import main

if __name__ == "__main__":
    main()

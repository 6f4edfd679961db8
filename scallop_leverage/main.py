#!/usr/bin/env python3
"""
Scallop leverage loop
Entry point: python -m scallop_leverage.main {status,run}
"""
from .cli import main

if __name__ == "__main__":
    main()

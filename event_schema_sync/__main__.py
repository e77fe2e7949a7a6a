#!/usr/bin/env python3
"""
Entry point for running event_schema_sync as a module.
This file enables: python -m event_schema_sync writer|reader
"""

from .main import main

if __name__ == '__main__':
    main()

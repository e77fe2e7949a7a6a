#!/usr/bin/env python3

import argparse
import logging
import os
import sys

from .config import Settings
from .errors import EventSchemaSyncError
from .traffic_runner import EventReader, EventWriter


DEFAULT_CONFIG_FILE = 'config.yaml'


def set_logging_config(tags, log_level_str=None):
    """Configure logging to output only to stderr."""
    handlers = [logging.StreamHandler(sys.stderr)]

    log_levels = {
        'critical': logging.CRITICAL,
        'error': logging.ERROR,
        'warning': logging.WARNING,
        'info': logging.INFO,
        'debug': logging.DEBUG,
    }

    log_level = log_levels.get(log_level_str)
    if log_level is None:
        logging.warning(f'Unknown log level {log_level_str}, setting info')
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format=f'[{tags} %(asctime)s %(levelname)8s] %(message)s',
        handlers=handlers,
    )


def load_config(args) -> Settings:
    config = Settings()
    if args.config and os.path.exists(args.config):
        config.load(args.config)
    elif args.config != DEFAULT_CONFIG_FILE:
        raise FileNotFoundError(f'config file {args.config} not found')
    else:
        config.postgres.apply_env_overrides()

    if args.event_type_file is not None:
        config.event_type_file = args.event_type_file
    if args.seconds_between_reads is not None:
        config.seconds_between_reads = args.seconds_between_reads
    if args.seconds_between_writes is not None:
        config.seconds_between_writes = args.seconds_between_writes
    if args.log_level is not None:
        config.log_level = args.log_level
    config.validate()
    return config


def run_writer(args, config: Settings):
    set_logging_config('writer', log_level_str=config.log_level)
    writer = EventWriter(config)
    writer.run()


def run_reader(args, config: Settings):
    set_logging_config('reader', log_level_str=config.log_level)
    reader = EventReader(config)
    reader.run()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Keep a postgres schema in sync with an event type description '
                    'and generate random reads and writes against it',
    )
    parser.add_argument("mode", help="run mode", type=str, choices=["reader", "writer"])
    parser.add_argument("--config", help="config file path", default=DEFAULT_CONFIG_FILE, type=str)
    parser.add_argument("--event_type_file", help="event type description (json)", type=str, default=None)
    parser.add_argument("--seconds_between_reads", type=float, default=None)
    parser.add_argument("--seconds_between_writes", type=float, default=None)
    parser.add_argument(
        "--log_level", type=str, default=None,
        choices=["critical", "error", "warning", "info", "debug"],
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    try:
        config = load_config(args)
    except Exception as e:
        # yaml, validation and unsupported option errors alike
        logging.critical(f'{args.mode} failed to load config {args.config}: {e}')
        sys.exit(1)

    try:
        if args.mode == 'writer':
            run_writer(args, config)
        if args.mode == 'reader':
            run_reader(args, config)
    except EventSchemaSyncError as e:
        logging.critical(f'{args.mode} stopped: {e}', exc_info=config.debug_log_level)
        sys.exit(1)


if __name__ == '__main__':
    main()

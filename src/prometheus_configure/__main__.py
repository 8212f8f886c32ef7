import argparse
import sys
from .config import Config, validate_configuration
from .configure import configure
from .errors import ConfigureError
from .logging_setup import setup_logger
from .zone_setup import run_setup


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='prometheus-configure',
        description='Configure the Prometheus and BIND services of a Triton Prometheus zone'
    )
    parser.add_argument(
        'command',
        nargs='?',
        default='configure',
        choices=['configure', 'setup'],
        help="'configure' renders configs and drives services (default); "
             "'setup' performs one-time zone setup"
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    cfg = Config()
    if args.verbose:
        cfg.log_level = 'DEBUG'

    logger = setup_logger(
        name=cfg.logger_name,
        level=cfg.log_level,
        log_file=cfg.log_file,
        max_bytes=cfg.log_max_bytes,
        backup_count=cfg.log_backup_count,
        enable_structured_console=cfg.enable_structured_console,
        enable_structured_file=cfg.enable_structured_file,
        structured_log_file=cfg.structured_log_file
    )

    exit_code = 0
    try:
        errors = validate_configuration(cfg)
        if errors:
            for i, error in enumerate(errors, 1):
                logger.error(f"  {i}. {error}")
            raise ConfigureError(f"invalid configuration ({len(errors)} errors)")

        if args.command == 'setup':
            run_setup(cfg)
        else:
            configure(cfg)
    except ConfigureError as e:
        logger.critical(f"ERROR: {e}")
        exit_code = 1
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, aborting")
        exit_code = 130
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        exit_code = 1
    finally:
        for h in logger.handlers:
            h.flush()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

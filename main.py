#!/usr/bin/env python3
"""
CLI application for collecting metrics and reporting them to Cassandra.
"""
import argparse
import importlib
import inspect
import json
import logging
import os
import pkgutil
import sys
import time
from typing import List, Dict, Any, Optional, Type, Tuple, Union

from metrics_cassandra import config as cassandra_config
from metrics_cassandra.cassandra import Cassandra
from metrics_cassandra.collector import Collector
from metrics_cassandra.errors import ConfigurationError, TeardownError
from metrics_cassandra.reporter import CassandraReporter

logger = logging.getLogger(__name__)

KNOWN_COLLECTOR_MODULES = [
    'collectors.system_collector.system_collector',
    'collectors.process_collector.process_collector',
]


class CollectorRegistry:
    """
    Registry for dynamically discovering and instantiating collectors.
    """

    def __init__(self):
        self.collectors = {}

    def discover_collectors(self):
        """
        Discover all collector classes that inherit from the base Collector class.
        """
        import collectors
        logger.debug("Starting collector discovery...")

        # Collector directories have no __init__.py, so iter_modules cannot see them
        for module_name in KNOWN_COLLECTOR_MODULES:
            try:
                module = importlib.import_module(module_name)
                self._register_collectors_from_module(module)
            except ImportError as e:
                logger.warning("Could not import known collector module %s: %s", module_name, e)

        for module_name in self._find_collector_modules(collectors):
            try:
                module = importlib.import_module(module_name)
                self._register_collectors_from_module(module)
            except ImportError as e:
                logger.warning("Could not import collector module %s: %s", module_name, e)

    def _find_collector_modules(self, package) -> List[str]:
        """
        Find all modules in the collectors package that might contain collectors.
        """
        modules = []
        prefix = package.__name__ + "."

        for _, name, is_pkg in pkgutil.iter_modules(package.__path__, prefix):
            if is_pkg:
                try:
                    subpackage = importlib.import_module(name)
                    modules.extend(self._find_collector_modules(subpackage))
                except ImportError as e:
                    logger.warning("Could not import collector package %s: %s", name, e)
            else:
                modules.append(name)

        return modules

    def _register_collectors_from_module(self, module):
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if issubclass(obj, Collector) and obj is not Collector and not inspect.isabstract(obj):
                collector_type = obj.__name__.replace('Collector', '').lower()
                self.collectors[collector_type] = obj
                logger.info("Registered collector: %s from class %s", collector_type, obj.__name__)

    def get_collector_class(self, collector_type: str) -> Optional[Type[Collector]]:
        return self.collectors.get(collector_type.lower())

    def get_available_collectors(self) -> List[str]:
        return list(self.collectors.keys())


collector_registry = CollectorRegistry()


def setup_logging(log_level: str) -> None:
    """
    Setup logging with the specified log level.

    Args:
        log_level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_addresses(addresses: Union[str, List[str]]) -> List[str]:
    """
    Normalize contact points given as a comma separated string or a list.

    Args:
        addresses (str or list): Contact points

    Returns:
        list: Non-empty, stripped contact points
    """
    if isinstance(addresses, str):
        addresses = addresses.split(',')
    return [a.strip() for a in addresses if a and a.strip()]


def build_cassandra(args: argparse.Namespace) -> Cassandra:
    """
    Build the Cassandra client from command line arguments.

    Args:
        args (argparse.Namespace): Command line arguments

    Returns:
        Cassandra: The configured, not yet connected, client

    Raises:
        ConfigurationError: If the arguments do not form a valid configuration
    """
    return Cassandra(
        addresses=parse_addresses(args.addresses),
        keyspace=args.keyspace,
        table=args.table,
        ttl=int(args.ttl),
        port=int(args.port),
        consistency=args.consistency
    )


def instantiate_collector(collector_type: str, collector_args: Dict[str, Any]) -> Optional[Collector]:
    """
    Instantiate a collector of the specified type with the provided arguments.

    Args:
        collector_type (str): Type of collector to instantiate
        collector_args (dict): Arguments to pass to the collector constructor

    Returns:
        Collector: An instance of the requested collector or None if not found
    """
    collector_type = collector_type.lower()
    if collector_type.endswith('collector'):
        collector_type = collector_type[:-9]

    collector_class = collector_registry.get_collector_class(collector_type)

    if not collector_class:
        available = collector_registry.get_available_collectors()
        logger.error("Collector type not found: %s. Available collectors: %s",
                     collector_type, available if available else "None discovered")
        return None

    try:
        return collector_class(**collector_args)
    except Exception as e:
        logger.error("Error instantiating collector %s: %s", collector_type, e)
        return None


def parse_collector_spec(spec: str) -> Tuple[str, Dict[str, Any]]:
    """
    Parse a collector specification string into a collector type and parameters.

    Args:
        spec (str): Collector specification in format "type:param1=value1,param2=value2"

    Returns:
        tuple: (collector_type, parameters_dict)
    """
    parts = spec.split(':', 1)
    collector_type = parts[0].strip().lower()

    params = {}
    if len(parts) > 1 and parts[1].strip():
        for param in parts[1].strip().split(','):
            if '=' in param:
                key, value = param.split('=', 1)
                params[key.strip()] = value.strip()

    return collector_type, params


def build_collectors(specs: List[str]) -> List[Collector]:
    collectors = []
    for collector_spec in specs:
        collector_type, params = parse_collector_spec(collector_spec)
        collector = instantiate_collector(collector_type, params)
        if collector:
            collectors.append(collector)
    return collectors


def load_config_from_file(config_file: str) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    Args:
        config_file (str): Path to the JSON config file

    Returns:
        dict: Configuration dictionary with argument names as keys
    """
    if not os.path.exists(config_file):
        logger.error("Config file not found: %s", config_file)
        return {}

    try:
        with open(config_file, 'r') as f:
            config = json.load(f)
            logger.debug("Loaded configuration from %s: %s", config_file, config)
            return config
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Error parsing config file %s: %s", config_file, e)
        return {}


def merge_config_with_args(config: Dict[str, Any], args: argparse.Namespace,
                           parser: argparse.ArgumentParser) -> argparse.Namespace:
    """
    Merge configuration from a file with command line arguments.
    Values given explicitly on the command line take precedence over the file.

    Args:
        config (dict): Configuration dictionary from file
        args (argparse.Namespace): Command line arguments
        parser (argparse.ArgumentParser): Parser used to detect defaulted values

    Returns:
        argparse.Namespace: Updated arguments namespace
    """
    args_dict = vars(args)

    for key, value in config.items():
        arg_key = key.replace('-', '_')
        if arg_key not in args_dict or args_dict[arg_key] == parser.get_default(arg_key):
            args_dict[arg_key] = value

    return argparse.Namespace(**args_dict)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Collect metrics and report them to Cassandra.',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument('--config-file', type=str,
                        help='Path to JSON configuration file')
    parser.add_argument('--log-level', type=str, default=cassandra_config.LOG_LEVEL,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Log level')
    parser.add_argument('--interval', type=int, default=cassandra_config.REPORT_INTERVAL,
                        help='Interval between report cycles in seconds')
    parser.add_argument('--count', type=int, default=0,
                        help='Number of report cycles (0 for infinite)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Do not write to Cassandra, just log the samples')
    parser.add_argument('--collectors', type=str, nargs='*', default=None,
                        help='List of collectors to run in format "type:param1=value1,param2=value2"')

    # Cassandra configuration
    parser.add_argument('--addresses', type=str, default=','.join(cassandra_config.ADDRESSES),
                        help='Comma separated Cassandra contact points')
    parser.add_argument('--port', type=int, default=cassandra_config.PORT,
                        help='Cassandra native transport port')
    parser.add_argument('--keyspace', type=str, default=cassandra_config.KEYSPACE,
                        help='Keyspace for metrics')
    parser.add_argument('--table', type=str, default=cassandra_config.TABLE,
                        help='Metric table name')
    parser.add_argument('--ttl', type=int, default=cassandra_config.TTL,
                        help='TTL for stored samples in seconds (0 for no expiry)')
    parser.add_argument('--consistency', type=str, default=cassandra_config.CONSISTENCY,
                        help='Write consistency level')
    parser.add_argument('--prefix', type=str, default=cassandra_config.PREFIX,
                        help='Prefix prepended to every metric name')
    return parser


def run(reporter: CassandraReporter, interval: int, count: int, dry_run: bool) -> int:
    """
    Run report cycles on schedule.

    Returns:
        int: Number of rounds completed
    """
    round_count = 0
    next_report_time = time.time()
    try:
        while count == 0 or round_count < count:
            if time.time() > next_report_time:
                next_report_time = time.time()

            round_count += 1
            logger.info("Report round %s%s", round_count, ("/%s" % count if count > 0 else ""))

            if dry_run:
                for sample in reporter.collect_samples():
                    logger.info("DRY RUN: Would send %s=%s at %s", sample.name, sample.value,
                                sample.timestamp.isoformat())
            else:
                reporter.report()

            if count == 0 or round_count < count:
                next_report_time += interval
                wait_time = next_report_time - time.time()
                if wait_time > 0:
                    logger.debug("Waiting %.2f seconds until next report...", wait_time)
                    time.sleep(wait_time)
                else:
                    logger.warning("Report took longer than interval. Next report will start immediately.")
    except KeyboardInterrupt:
        logger.info("Reporting interrupted by user.")
    return round_count


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to parse arguments and run the reporter."""
    early_parser = argparse.ArgumentParser(add_help=False)
    early_parser.add_argument('--config-file', type=str)
    early_parser.add_argument('--log-level', type=str, default=cassandra_config.LOG_LEVEL)
    early_args, _ = early_parser.parse_known_args(argv)

    setup_logging(early_args.log_level)

    config = {}
    if early_args.config_file:
        logger.info("Loading configuration from %s", early_args.config_file)
        config = load_config_from_file(early_args.config_file)

    parser = build_parser()
    args = parser.parse_args(argv)
    if config:
        args = merge_config_with_args(config, args, parser)
        logging.getLogger().setLevel(args.log_level.upper())

    if not args.collectors:
        parser.error("the --collectors argument is required either on command line or in config file")

    collector_registry.discover_collectors()
    logger.info("Available collectors: %s", collector_registry.get_available_collectors())

    collectors = build_collectors(args.collectors)
    if not collectors:
        logger.error("No usable collectors configured.")
        return 1

    try:
        cassandra = build_cassandra(args)
    except (ConfigurationError, ValueError) as e:
        logger.error("Invalid Cassandra configuration: %s", e)
        return 2

    reporter = CassandraReporter(cassandra, collectors=collectors, prefix=args.prefix)
    try:
        run(reporter, args.interval, args.count, args.dry_run)
    finally:
        try:
            cassandra.shutdown()
        except TeardownError as e:
            logger.debug("Error shutting down Cassandra cluster: %s", e)

    failures = reporter.get_failures()
    if failures:
        logger.warning("Finished with %s consecutive write failures.", failures)
    logger.info("Reporting completed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Configuration settings for the Cassandra metrics reporter.
"""
import os

# Cluster configuration
ADDRESSES = [a.strip() for a in os.getenv('CASSANDRA_ADDRESSES', '127.0.0.1').split(',') if a.strip()]
PORT = int(os.getenv('CASSANDRA_PORT', '9042'))
KEYSPACE = os.getenv('CASSANDRA_KEYSPACE', 'metrics')
CONSISTENCY = os.getenv('CASSANDRA_CONSISTENCY', 'ONE')

# Storage configuration
TABLE = os.getenv('CASSANDRA_TABLE', 'metrics')
TTL = int(os.getenv('CASSANDRA_TTL', '0'))  # seconds, 0 means no expiry

# Reporter configuration
PREFIX = os.getenv('METRICS_PREFIX', None)
REPORT_INTERVAL = int(os.getenv('REPORT_INTERVAL', '60'))  # seconds

# Logging configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# src/libs/portools-common/portools_common/config.py
import os
from dotenv import load_dotenv

# Load environment variables from a .env file for local development.
load_dotenv()


# Database Configurations
POSTGRES_USER = os.getenv("POSTGRES_USER", "user")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "password")
POSTGRES_DB = os.getenv("POSTGRES_DB", "portools")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "postgres")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

# Durability level for checkpoint commits. 'remote_apply' waits until synchronous
# standbys have applied the commit; on a standalone primary it behaves like 'on'.
CHECKPOINT_SYNCHRONOUS_COMMIT = os.getenv("CHECKPOINT_SYNCHRONOUS_COMMIT", "remote_apply")

# Kafka Configurations
KAFKA_BOOTSTRAP_SERVERS = os.getenv("KAFKA_BOOTSTRAP_SERVERS_HOST") or os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9093")
KAFKA_PORTFOLIO_CHANGES_TOPIC = os.getenv("KAFKA_PORTFOLIO_CHANGES_TOPIC", "portfolio_changes")

# Change feed / summary stream
SUMMARY_STREAM_CONSUMER_ID = os.getenv("SUMMARY_STREAM_CONSUMER_ID", "portools-summary-stream")
CHANGE_FEED_POLL_TIMEOUT_SECONDS = float(os.getenv("CHANGE_FEED_POLL_TIMEOUT_SECONDS", "1.0"))
CHANGE_FEED_START_FROM = os.getenv("CHANGE_FEED_START_FROM", "earliest")
SUMMARY_STREAM_WEB_PORT = int(os.getenv("SUMMARY_STREAM_WEB_PORT", "8080"))

# Portfolio upload limits
PORTFOLIO_MAX_FILE_SIZE = int(os.getenv("PORTFOLIO_MAX_FILE_SIZE", "65536"))
PORTFOLIO_MAX_NUM_LOTS = int(os.getenv("PORTFOLIO_MAX_NUM_LOTS", "1000"))

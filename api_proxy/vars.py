import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "api-proxy")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()
# Empty keeps every path forwarded to the upstream
METRICS_PATH = os.getenv("METRICS_PATH", "").rstrip("/")

"""
Gunicorn configuration for CodeTrack production deployment.

Usage:
    gunicorn codetrack.main:app -c gunicorn.conf.py
"""

import multiprocessing
import os

# Bind to all interfaces on port 8000
bind = os.getenv("BIND", "0.0.0.0:8000")

# Worker processes: CPU cores * 2 + 1 (Gunicorn recommendation)
workers = int(os.getenv("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))

# Use Uvicorn's ASGI worker for FastAPI
worker_class = "uvicorn.workers.UvicornWorker"

# Request timeout (seconds). Scan streams run fetch + extract + diff in one request.
timeout = int(os.getenv("GUNICORN_TIMEOUT", "600"))

# Let in-flight scans finish on reload before workers are killed
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "120"))

# Keep-alive connections (seconds)
keepalive = 5

# Logging
accesslog = "-"  # stdout
errorlog = "-"   # stderr
loglevel = "info"

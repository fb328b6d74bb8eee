"""
Production Server Configuration

Run FastAPI with Uvicorn workers under Gunicorn for production deployment.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes. Every worker runs its own refresh loop unless
# PIPELINE_REFRESH_ENABLED=false, so keep the count low or move the
# refresh to the Prefect flow.
workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count() + 1, 4)))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
# A cold snapshot waits on three paginated upstream sweeps
timeout = 180
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "unified-dashboard-api"

# Server mechanics
daemon = False
pidfile = "/tmp/gunicorn.pid"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


def when_ready(server):
    """Called when server is ready to receive connections."""
    server.log.info("Unified Dashboard API ready with %s workers", server.cfg.workers)

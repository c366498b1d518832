# Gunicorn configuration file for the Tender Sync API
# The API process also hosts the background sync scheduler thread

import os

# Server socket
bind = f"0.0.0.0:{os.getenv('PORT', 8000)}"
backlog = 2048

# Worker processes
workers = 1  # One worker so only one scheduler thread runs syncs
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 300  # Manual full resyncs run inside the request
keepalive = 2

# Restart workers periodically to prevent memory leaks
max_requests = 1000
max_requests_jitter = 100

# Logging
accesslog = "-"  # Log to stdout
errorlog = "-"   # Log to stderr
loglevel = os.getenv("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "tender-sync"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190

# Application factory: gunicorn -c gunicorn.conf.py
wsgi_app = "app:create_app()"
preload_app = False  # The scheduler thread must start in the worker, not the master
reload = False

"""
Gunicorn configuration for production deployment.

Usage:
    gunicorn -c gunicorn.conf.py wsgi:app

Security considerations:
- Workers are pre-forked (not threaded) to isolate request handling
- Timeouts prevent slow-loris DoS attacks
- Access log format excludes sensitive data (no request bodies)
- Worker recycling (max_requests) mitigates memory leak risks
"""

import multiprocessing
import os

# --- Bind ---
# Listen on all interfaces inside the container.
# The container's port mapping controls external exposure.
bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:8000')

# --- Workers ---
# Pre-fork worker model: each worker is an isolated process.
# Formula: 2 * CPU cores + 1 (gunicorn recommendation).
# Cap at 4; the store is shared, so more workers need Redis (REDIS_URL).
workers = min(multiprocessing.cpu_count() * 2 + 1, 4)
worker_class = 'sync'

# --- Timeouts ---
# Request timeout: 30s covers a 5MB image upload plus Pillow verification.
# Argon2id at 64 MiB takes well under a second.
timeout = 30
# Graceful shutdown: allow 10s for in-flight requests to complete.
graceful_timeout = 10
# Keep-alive: 2s default, matches nginx proxy_read_timeout expectations.
keepalive = 2

# --- Worker Recycling ---
# Restart workers after this many requests to prevent memory leaks.
# Jitter prevents all workers from restarting simultaneously.
max_requests = 1000
max_requests_jitter = 50

# --- Security ---
# Header limits; body size is capped by MAX_CONTENT_LENGTH (6MB) in Flask.
# Oversized request lines and headers are rejected before Flask runs.
limit_request_line = 8190          # Max URL length (bytes)
limit_request_fields = 50          # Max number of headers
limit_request_field_size = 8190    # Max header value length (bytes)

# --- Server Identity ---
# Don't disclose gunicorn version in Server header.
# Combined with Flask's header stripping, no version info is exposed.
server_software = ''

# --- Logging ---
# Access log format: timestamp, IP, method, path, status, response time.
# Excludes: request bodies, cookies, and authorization headers.
accesslog = '-'  # stdout (captured by Docker logging)
errorlog = '-'   # stderr (captured by Docker logging)
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" %(L)s'
loglevel = os.environ.get('LOG_LEVEL', 'info')

# --- Process Naming ---
proc_name = 'cultureconnect'

# --- Forwarded Headers ---
# Trust X-Forwarded-* headers from the reverse proxy.
# IMPORTANT: Only enable when behind a trusted proxy (nginx, ALB, etc.).
# Without a proxy, an attacker could spoof these headers.
# The app itself reads client IPs through ProxyFix (PROXY_COUNT), which
# feeds per-IP rate limits and session IP binding.
forwarded_allow_ips = os.environ.get('FORWARDED_ALLOW_IPS', '127.0.0.1')

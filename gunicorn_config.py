"""
Gunicorn configuration for subpath-proxy production deployment
"""
import multiprocessing
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"

# Proxying waits on the origin most of the time; gevent workers yield while
# they do, so a handful of processes serve many requests.
workers = int(os.environ.get('WEB_CONCURRENCY', multiprocessing.cpu_count() + 1))
worker_class = 'gevent'
worker_connections = 1000

# Must exceed UPSTREAM_READ_TIMEOUT for slow origins
timeout = 330
graceful_timeout = 30
keepalive = 5

# Requests arrive through the edge proxy; ProxyFix in the app reads the headers
forwarded_allow_ips = os.environ.get('FORWARDED_ALLOW_IPS', '127.0.0.1')

accesslog = '-'
errorlog = '-'
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
access_log_format = '%(h)s %(t)s "%(r)s" %(s)s %(b)s "%(a)s" %(D)s'

proc_name = 'subpath-proxy'

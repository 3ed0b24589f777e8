"""
Gunicorn settings for the BarberBook container.

Sync workers are enough: every slow call (Mercado Pago, Stripe, WUZAPI)
carries its own short timeout, so the worker timeout only needs to cover
the slowest of those plus the database round trips.
"""
import os

bind = '0.0.0.0:' + os.getenv('PORT', '8080')
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
threads = int(os.getenv('GUNICORN_THREADS', '1'))
worker_class = 'sync'
timeout = 45
graceful_timeout = 20
keepalive = 5

# Create the app (and validate production config) once in the master
preload_app = True
proc_name = 'barberbook'

accesslog = '-'
errorlog = '-'
loglevel = os.getenv('LOG_LEVEL', 'info').lower()
capture_output = True


def when_ready(server):
    server.log.info('BarberBook accepting requests on %s with %d workers', bind, workers)


def worker_abort(worker):
    worker.log.warning('Worker %s aborted, likely a payment gateway call outlived the timeout', worker.pid)

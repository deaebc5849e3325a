"""Gunicorn configuration: one worker process so every request sees the same cluster state."""
import sys

# Gunicorn config variables
bind = "0.0.0.0:8080"
wsgi_app = "app:build_app(start_ticker=False)"
workers = 1  # state lives in process memory
worker_class = "gthread"
threads = 8
# batch submissions block while polling the orchestrator
timeout = 120
preload_app = False

def post_worker_init(worker):
    """Called just after a worker has initialized the application; starts the scheduling ticker."""
    app = worker.wsgi
    engine = app.config.get('scheduling_engine') if app is not None else None
    if engine is None:
        print(f"[Worker {worker.pid}] WARNING: No scheduling engine found in app.config", file=sys.stderr, flush=True)
        return
    engine.start()
    print(f"[Worker {worker.pid}] Scheduling ticker running: {engine.running}", file=sys.stderr, flush=True)

def worker_exit(server, worker):
    app = worker.wsgi
    engine = app.config.get('scheduling_engine') if app is not None else None
    if engine is not None:
        engine.stop()

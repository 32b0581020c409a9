import os

wsgi_app = "app:app"

worker_class = "gevent"
# notification_hub is per process: a socket only sees events published by its own worker
workers = int(os.getenv("WEB_CONCURRENCY", "1"))
worker_connections = int(os.getenv("WORKER_CONNECTIONS", "1000"))
timeout = 120
graceful_timeout = 30
keepalive = 5
bind = "0.0.0.0:{}".format(os.getenv("PORT", "5000"))

loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = "-"
errorlog = "-"

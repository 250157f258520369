# Gunicorn configuration for Ignyt
# Each worker starts its own scheduler when ENABLE_SCHEDULER=1, so enable it on one process only

# Worker settings
workers = 2
worker_class = 'sync'

# Timeout settings - publishing fans out to several platform APIs
timeout = 120
graceful_timeout = 60
keepalive = 5

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'info'

# Request handling
max_requests = 1000
max_requests_jitter = 50

# Bind
bind = '0.0.0.0:5000'

import os

os.environ.setdefault("PB_ENVIRONMENT", "test")
os.environ.setdefault("PB_BACKEND_BASE_URL", "http://pipeline-backend.test")
os.environ.setdefault("PB_LOG_LEVEL", "WARNING")

import logging
import os
import sys

sys.path.append(os.path.dirname(__file__))

from app.core.config import Settings
from app.factory import create_app

settings = Settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app(settings)

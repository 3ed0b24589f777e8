"""
BarberBook entry point.

    gunicorn run:app          # container
    python run.py             # local development server
"""
import os
import sys
import logging

from app import create_app

logger = logging.getLogger('barberbook')

CONFIG_NAME = os.getenv('FLASK_ENV', 'production')

try:
    app = create_app(CONFIG_NAME)
except RuntimeError as e:
    # Production config validation failed; refuse to boot
    logger.critical(str(e))
    sys.exit(1)

logger.info(
    'BarberBook ready: config=%s routes=%d database=%s',
    CONFIG_NAME,
    len(list(app.url_map.iter_rules())),
    'configured' if os.getenv('DATABASE_URL') else 'default',
)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', '5000')),
        debug=CONFIG_NAME == 'development',
    )

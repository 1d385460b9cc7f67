# __init__.py

from flask import Flask
import logging
from logging.handlers import RotatingFileHandler
import os
import threading
from dotenv import load_dotenv

from .api import BackendClient

load_dotenv()


def create_app(test_config=None):
    # Create Flask app
    app = Flask(__name__)

    # App configuration
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'attendance-dashboard')
    app.config['BACKEND_API_URL'] = os.getenv('BACKEND_API_URL', 'http://localhost:3000/api')
    app.config['BACKEND_API_KEY'] = os.getenv('BACKEND_API_KEY')
    app.config['BACKEND_TIMEOUT'] = float(os.getenv('BACKEND_TIMEOUT', 30))
    app.config['UPLOAD_TIMEOUT'] = float(os.getenv('UPLOAD_TIMEOUT', 600))
    app.config['MAX_VIDEO_SIZE_MB'] = int(os.getenv('MAX_VIDEO_SIZE_MB', 500))
    app.config['ERROR_DISPLAY_SECONDS'] = float(os.getenv('ERROR_DISPLAY_SECONDS', 6))
    app.config['PROGRESS_TICK_SECONDS'] = float(os.getenv('PROGRESS_TICK_SECONDS', 0.15))
    app.config['EDITOR_IDLE_SECONDS'] = float(os.getenv('EDITOR_IDLE_SECONDS', 2 * 60 * 60))
    app.config['MAX_CONTENT_LENGTH'] = 520 * 1024 * 1024  # 500MB video plus form overhead
    app.config['LOG_FILE'] = os.getenv('LOG_FILE', 'python.log')

    if test_config:
        app.config.update(test_config)

    # Backend client and the open editors, one per editing session
    app.extensions['backend_client'] = app.config.get('BACKEND_CLIENT') or BackendClient(
        app.config['BACKEND_API_URL'],
        api_key=app.config['BACKEND_API_KEY'],
        timeout=app.config['BACKEND_TIMEOUT'],
        upload_timeout=app.config['UPLOAD_TIMEOUT'],
    )
    app.extensions['session_editors'] = {}
    app.extensions['session_editors_lock'] = threading.Lock()

    configure_logging(app)

    # Register blueprints
    from .online_sessions import online_sessions
    app.register_blueprint(online_sessions, url_prefix='/dashboard/manage_online_system/online_sessions')

    return app


def configure_logging(app):
    logging.getLogger('werkzeug').setLevel(logging.ERROR)
    logging.getLogger('dashboard').setLevel(logging.INFO)

    # Errors go to a rotating log file in production
    if not app.debug and not app.testing:
        file_handler = RotatingFileHandler(app.config['LOG_FILE'], maxBytes=1024 * 1024 * 100, backupCount=20)
        file_handler.setLevel(logging.ERROR)
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(formatter)
        app.logger.addHandler(file_handler)
        logging.getLogger('dashboard').addHandler(file_handler)

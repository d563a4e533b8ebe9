import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def _engine_options(app):
    """Bound every store call by STORE_TIMEOUT_SECONDS"""
    options = dict(app.config.get('SQLALCHEMY_ENGINE_OPTIONS', {}))
    timeout = app.config.get('STORE_TIMEOUT_SECONDS')
    if timeout:
        connect_args = dict(options.get('connect_args', {}))
        if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
            connect_args.setdefault('timeout', timeout)
        else:
            connect_args.setdefault('connect_timeout', int(timeout))
        options['connect_args'] = connect_args
    return options


def create_app(config_name=None, test_config=None):
    """Application factory"""
    if config_name is None:
        config_name = os.environ.get('FLASK_CONFIG', 'default')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    if test_config:
        app.config.update(test_config)

    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = _engine_options(app)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Ensure the default SQLite folder exists
    os.makedirs(os.path.join(os.path.dirname(app.root_path), 'instance'), exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Register commands
    from harness_mes.commands import register_commands
    register_commands(app)

    # Create database tables and load process reference data
    with app.app_context():
        from harness_mes import models
        from harness_mes.services.processes import seed_processes
        db.create_all()
        seed_processes()

    return app

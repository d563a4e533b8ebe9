#!/usr/bin/env python3
"""
Harness MES - command line entry point

Run with:
    python run.py init-db
    python run.py trace backward <lot number>

Or through flask:
    flask --app run <command>
"""

import os
from flask.cli import FlaskGroup
from harness_mes import create_app

# Create application instance
app = create_app(os.environ.get('FLASK_CONFIG', 'development'))

cli = FlaskGroup(create_app=lambda: app)

if __name__ == '__main__':
    cli()

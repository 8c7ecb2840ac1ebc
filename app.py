from __future__ import annotations

import os

from flask import Flask

from config import BaseConfig, config_by_name
from models import db


def _load_config(app: Flask, config_name: str | None, test_config: dict | None) -> None:
    resolved_name = config_name or os.environ.get('FLASK_CONFIG', 'development')
    config_cls = config_by_name.get(resolved_name, BaseConfig)
    app.config.from_object(config_cls)
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    app.logger.debug('Loaded %s configuration', config_cls.__name__)


def create_app(config_name: str | None = None, test_config: dict | None = None):
    if isinstance(config_name, dict) and test_config is None:
        test_config = config_name
        config_name = None
    app = Flask(__name__)
    _load_config(app, config_name, test_config)
    db.init_app(app)
    return app


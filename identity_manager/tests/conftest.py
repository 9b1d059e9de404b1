import pytest

from flask import Flask


@pytest.fixture()
def app(tmp_path):
    app = Flask('identity_manager')
    app.config.update(
        DATABASE_URI=f'sqlite:///{tmp_path}/identity.db',
        CREATE_DB='1',
        JWT_SECRET='foosecret',
        LOG_JSON='0',
        LOG_LEVEL='DEBUG'
    )
    return app


@pytest.fixture()
def app_context(app):
    with app.app_context():
        yield app

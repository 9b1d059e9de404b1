"""Build an :class:`.AccountOrchestrator` from configuration."""

from typing import Any, Mapping, Optional
import logging

from flask import Flask, current_app

from . import config
from .app_logging import setup_logger
from .domain import Features
from .external import CorrelationCodec
from .orchestrator import AccountOrchestrator
from .services.directory import Database, PasswordPolicy, \
    SQLCredentialStore, SQLDirectoryStore
from .services.notifier import MailNotifier
from .services.session_store import get_session_store
from .services.tokens import JWTTokenProvider

logger = logging.getLogger(__name__)

EXTENSION = 'identity_manager'


def create_orchestrator(settings: Optional[Mapping] = None,
                        **engine_options: Any) -> AccountOrchestrator:
    """
    Wire the collaborators together and prepare the directory.

    Parameters
    ----------
    settings : Mapping
        Config keys as in :mod:`.config`. Defaults to the values in that
        module, i.e. to the environment.
    engine_options
        Passed on to :func:`sqlalchemy.create_engine`.

    """
    if settings is None:
        settings = config.as_dict()
    secret = settings['JWT_SECRET']

    db = Database(settings['DATABASE_URI'], **engine_options)
    if config.flag(settings, 'CREATE_DB'):
        db.create_all()

    tokens = JWTTokenProvider(db, secret,
                              lifespan=int(settings['TOKEN_LIFESPAN']))
    credentials = SQLCredentialStore(
        db, tokens,
        policy=PasswordPolicy.from_config(settings),
        lockout_threshold=int(settings['LOCKOUT_THRESHOLD']),
        lockout_duration=int(settings['LOCKOUT_DURATION'])
    )
    notifier = MailNotifier(
        host=settings['SMTP_HOST'],
        port=int(settings['SMTP_PORT']),
        sender=settings['MAIL_SENDER'],
        sender_name=settings['MAIL_SENDER_NAME'],
        username=settings.get('SMTP_USERNAME'),
        password=settings.get('SMTP_PASSWORD'),
        use_tls=config.flag(settings, 'SMTP_USE_TLS')
    )
    providers = [name.strip() for name
                 in settings['EXTERNAL_LOGIN_PROVIDERS'].split(',')
                 if name.strip()]

    orchestrator = AccountOrchestrator(
        SQLDirectoryStore(db, credentials),
        credentials,
        tokens,
        notifier,
        get_session_store(settings),
        CorrelationCodec(secret),
        features=Features.from_config(settings),
        base_url=settings['BASE_URL'],
        confirm_email_path=settings['CONFIRM_EMAIL_PATH'],
        reset_password_path=settings['RESET_PASSWORD_PATH'],
        providers=providers,
        default_return_url=settings['DEFAULT_LOGIN_REDIRECT_URL'],
        return_url_pattern=settings['LOGIN_REDIRECT_REGEX'],
        password_min_length=int(settings['PASSWORD_MIN_LENGTH']),
        password_max_length=int(settings['PASSWORD_MAX_LENGTH'])
    )
    orchestrator.bootstrap()
    logger.info('Identity manager ready; %s', orchestrator.features)
    return orchestrator


def init_app(app: Flask) -> None:
    """Set configuration defaults and attach an orchestrator to ``app``."""
    for key, value in config.as_dict().items():
        app.config.setdefault(key, value)
    setup_logger(level=app.config['LOG_LEVEL'],
                 json=config.flag(app.config, 'LOG_JSON', '1'))
    app.extensions[EXTENSION] = create_orchestrator(app.config)


def current_orchestrator() -> AccountOrchestrator:
    """Get the orchestrator of the current application."""
    if EXTENSION not in current_app.extensions:
        init_app(current_app)
    orchestrator: AccountOrchestrator = current_app.extensions[EXTENSION]
    return orchestrator

"""Directory database models."""

from sqlalchemy import Column, ForeignKey, Integer, String, Text, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class DBAccount(Base):  # type: ignore
    """
    Registered accounts.

    +------------------------+--------------+------+-----+---------+
    | Field                  | Type         | Null | Key | Default |
    +------------------------+--------------+------+-----+---------+
    | account_id             | varchar(36)  | NO   | PRI | NULL    |
    | email                  | varchar(256) | NO   |     | NULL    |
    | normalized_email       | varchar(256) | NO   | UNI | NULL    |
    | name                   | varchar(256) | YES  |     | NULL    |
    | flag_email_confirmed   | int(1)       | NO   |     | 0       |
    | joined_date            | int(11)      | NO   |     | 0       |
    | access_failed_count    | int(11)      | NO   |     | 0       |
    | lockout_end            | int(11)      | NO   |     | 0       |
    +------------------------+--------------+------+-----+---------+
    """

    __tablename__ = 'accounts'

    account_id = Column(String(36), primary_key=True)
    email = Column(String(256), nullable=False)
    normalized_email = Column(String(256), nullable=False, unique=True)
    name = Column(String(256))
    flag_email_confirmed = Column(Integer, nullable=False,
                                  server_default=text("'0'"))
    joined_date = Column(Integer, nullable=False, server_default=text("'0'"))
    access_failed_count = Column(Integer, nullable=False,
                                 server_default=text("'0'"))
    lockout_end = Column(Integer, nullable=False, server_default=text("'0'"))


class DBAccountPassword(Base):  # type: ignore
    """Password hashes. Accounts created from an external login have none."""

    __tablename__ = 'account_passwords'

    account_id = Column(ForeignKey('accounts.account_id'), primary_key=True)
    password_enc = Column(String(255), nullable=False)

    account = relationship('DBAccount')


class DBRole(Base):  # type: ignore
    """Authorization roles."""

    __tablename__ = 'roles'

    role_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)


class DBAccountRole(Base):  # type: ignore
    """Role membership of accounts."""

    __tablename__ = 'account_roles'

    account_id = Column(ForeignKey('accounts.account_id'), primary_key=True)
    role_id = Column(ForeignKey('roles.role_id'), primary_key=True)

    role = relationship('DBRole')


class DBExternalLogin(Base):  # type: ignore
    """Links between external provider identities and accounts."""

    __tablename__ = 'external_logins'

    provider = Column(String(128), primary_key=True)
    provider_key = Column(String(256), primary_key=True)
    account_id = Column(ForeignKey('accounts.account_id'), nullable=False,
                        index=True)
    tokens = Column(Text, nullable=False, server_default=text("'{}'"))
    """Provider-issued tokens, as a JSON object."""

    account = relationship('DBAccount')


class DBConsumedToken(Base):  # type: ignore
    """Purpose tokens that have already been used."""

    __tablename__ = 'consumed_tokens'

    jti = Column(String(64), primary_key=True)
    account_id = Column(String(36), nullable=False, index=True)
    purpose = Column(String(64), nullable=False)
    consumed_at = Column(Integer, nullable=False, server_default=text("'0'"))

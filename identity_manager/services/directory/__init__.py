"""
Relational directory of accounts, and the credentials stored alongside it.

The directory store, the credential store and the token ledger share one
:class:`.util.Database`, so that several of their operations can be grouped
in a single unit of work (see :meth:`.SQLDirectoryStore.transaction`).
"""

from . import models, passwords, util
from .credentials import SQLCredentialStore
from .passwords import PasswordPolicy
from .store import SQLDirectoryStore
from .util import Database

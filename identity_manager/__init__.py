"""
Identity manager.

The identity manager owns the lifecycle of user accounts: registration with
a role, sign in with lockout, password recovery, e-mail confirmation, and
sign in with an external login provider (e.g. Google or Facebook). It is
the primary repository for account data. Account data encompasses the
e-mail address, display name, password hash, role membership and linked
external logins.

Structure
---------
The :class:`.AccountOrchestrator` implements the workflows. It talks only
to the collaborator protocols in :mod:`.services`:

- the directory store keeps accounts, roles and external login links in a
  relational database (SQLAlchemy);
- the credential store verifies passwords, counts failed attempts and
  locks accounts out;
- the token provider issues single-use JSON web tokens for e-mail
  confirmation and password reset;
- the notifier delivers e-mail over SMTP;
- the session transport keeps sessions in redis, and packs them into
  cookies for the client.

Which workflows are available depends on the deployment; see
:class:`.Features` and :mod:`.config`. Use :func:`.create_orchestrator` to
wire everything up from configuration, or :func:`.factory.init_app` to
attach an orchestrator to a Flask application.
"""

from .domain import Account, Features, Role
from .factory import create_orchestrator, current_orchestrator
from .orchestrator import AccountOrchestrator

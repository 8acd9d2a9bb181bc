# accounts/__init__.py
"""
Accounts app - users and authorization for the ledger.

This app provides:
- User: email-based user with a ledger role
- ROLE_DEFAULTS: permission codes granted to each role
- ActorContext: authorization context passed to ledger commands
"""

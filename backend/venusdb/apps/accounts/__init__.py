# backend/venusdb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- User accounts (email + password)
- Public auth endpoints (signup, login, current user)

Services are imported by path rather than from this package, because
`venusdb.security` imports the models from here.
"""

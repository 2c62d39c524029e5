"""auth/ -- Accounts, credentials, tokens and authorization for Gatehouse.

Layer rule: auth/ imports from core/ and third-party libraries only.
It does NOT import from api/ or directory/.
api/ imports from auth/, not the other way around.
"""

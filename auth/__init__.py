"""auth/ -- Session lifecycle and role-based authorization package for SessionGate.

Layer rule: auth/ imports only stdlib + third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
auth/dependencies.py is the only module here that knows about FastAPI.
"""

"""audit/ -- Append-only activity trail for the admin panel.

Layer rule: audit/ imports only stdlib + third-party libraries and auth/
helpers shared for storage setup. It does NOT import from api/.
api/ imports from audit/, not the other way around.
"""

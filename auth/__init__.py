"""auth/ -- Credential handling and request authentication for Taledynamic.

Layer rule: auth/ imports only core/ + stdlib + third-party libraries.
It does NOT import from api/, web/, db/, or services/.
api/ and web/ import from auth/, not the other way around.
"""

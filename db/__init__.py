"""db/ -- SQLAlchemy Core persistence layer for Taledynamic.

Layer rule: db/ imports only core/ + third-party libraries.
It does NOT import from api/, web/, auth/, or services/.
"""

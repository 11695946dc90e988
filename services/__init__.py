"""services/ -- Domain logic for users, tokens, and workspaces.

Services validate input, run each operation as one unit of work through
DataContext, and report failures as core.errors exceptions.

Layer rule: services/ may import core/, db/, and auth/. It does NOT import
from api/ or web/.
"""

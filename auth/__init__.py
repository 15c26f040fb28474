"""auth/ -- User accounts and login for RadarOne.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/ or sessions/.
api/ imports from auth/, not the other way around.
"""

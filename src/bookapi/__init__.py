"""
bookapi: Account service of the BookAPI catalog.

Registration, OTP email verification, manager/admin approval and
JWT session issuance for catalog users.
"""

__version__ = "1.0.0"

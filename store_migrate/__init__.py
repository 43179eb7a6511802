"""
Store-to-store migration and verification.

Moves the grievance portal schema from Supabase into MySQL, parents
before children, and checks the result afterwards.
"""

__version__ = "0.1.0"

"""
Bank Admin Back Office

Customer and account record-keeping for banking administrators, with
token-based authentication and basic reporting aggregates.
"""

__version__ = "1.0.0"

"""
Account directory: records and the interchangeable persistence backends.

Both backends persist the whole directory on every write; see `AccountStore`.
"""

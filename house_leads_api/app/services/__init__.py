"""
Service layer.

Each service wraps the SQLite queries and the business rules of one
domain and returns a result envelope instead of raising.  ``filtering``
and the statistics/export helpers are pure functions over the rows the
services return.
"""

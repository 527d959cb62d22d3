"""
Pydantic schema definitions for API payloads.

Accounts, houses, guests and statistics each define their own request
and response models; ``common`` holds the ``{data, message}`` and
``{success, message}`` envelopes every route returns.
"""

"""
Top-level package for the House Leads back-office API.

Makes ``house_leads_api`` importable so that modules within ``app``
can be referenced with fully qualified names like
``house_leads_api.app.main``.  All functionality lives in submodules
under ``app``.
"""

__all__ = []

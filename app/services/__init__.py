"""
                        Services Module

Business logic behind the HTTP API. Object storage follows the hybrid
architecture pattern: a local implementation for development and a real
one (Supabase Storage) for staging and production.

Services:
    - auth: accounts, sessions and the admin gate
    - profiles: registration, self-service and admin user management
    - catalog: categories and products
    - orders: checkout, history, admin console, dashboard
    - documents: identity document upload/download/delete
    - storage: object storage backends
    - excel_manager: spreadsheet export of the admin order view
"""

from app.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]

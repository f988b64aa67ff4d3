"""
                Food Share Orders

Backend for a free food distribution service: catalog browsing,
cart checkout, order review by administrators, identity document
upload and spreadsheet export of orders.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"

"""
ERP Warehouse ETL

Extracts reference data and business documents from the ERP and loads them
into a star-schema warehouse.
"""

__version__ = "1.0.0"

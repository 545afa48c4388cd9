"""
ERP Warehouse ETL
Configuration Module
"""
from .settings import Settings, get_settings, DEFAULT_BATCH_SIZE

__all__ = ["Settings", "get_settings", "DEFAULT_BATCH_SIZE"]

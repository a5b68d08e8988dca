"""
Restaurant CRM
Configuration Module
"""
from .settings import MessagingSettings, Settings, TaggingSettings, get_settings

__all__ = ["MessagingSettings", "Settings", "TaggingSettings", "get_settings"]

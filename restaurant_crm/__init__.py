"""
Restaurant CRM - customer tagging and automation engine.
"""

__version__ = "1.0.0"

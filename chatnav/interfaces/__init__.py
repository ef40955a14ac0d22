"""
User-facing interfaces
"""

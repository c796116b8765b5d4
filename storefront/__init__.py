"""
E-Commerce Storefront Schema

Relational schema, constraint enforcement and typed data access for an
e-commerce platform.
"""

__version__ = "1.0.0"

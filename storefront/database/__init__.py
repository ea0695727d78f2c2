"""
Database package.

- base: declarative base and common columns
- connection: async engine, session dependency and health checks
- models: ORM models for products, coupons, customers and orders
"""

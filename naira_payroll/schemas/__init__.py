"""
Naira Payroll Engine - Schemas Package

Pydantic schemas for request/response validation.
"""

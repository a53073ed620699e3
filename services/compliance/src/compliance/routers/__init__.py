"""
API router package for the VoxGuard compliance service.

Contains the FastAPI router modules for health, ad-hoc evaluation,
session lifecycle, rule management, and alert reporting endpoints.
"""

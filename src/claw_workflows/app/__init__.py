"""Claw Workflows FastAPI application."""

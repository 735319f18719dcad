"""Pydantic schemas for the gateway and its terminal client."""

"""Pydantic Schemas - request/response contracts for the HTTP surface and command inputs.
"""

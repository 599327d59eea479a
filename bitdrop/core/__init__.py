"""
Core business logic for drops.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. Orchestrators receive their collaborators
through constructor arguments so they can be tested with fakes.
"""

"""
Snowflake persistence for drops.
"""

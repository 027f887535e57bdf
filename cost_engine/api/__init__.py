"""
HTTP API of the Cost Control Engine.
"""

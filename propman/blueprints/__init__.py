"""
PropMan — Property Project Management
Blueprint registry.
"""

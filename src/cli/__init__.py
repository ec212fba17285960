"""
Command-line interface for stack-console.
"""

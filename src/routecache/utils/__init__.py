"""
Shared helpers: console/logging and tree-sitter node utilities.
"""

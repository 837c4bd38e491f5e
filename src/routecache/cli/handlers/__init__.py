"""
CLI Handlers Package.

Implementation modules for the command-line actions.
"""

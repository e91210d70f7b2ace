"""
devloop: restarts a server process whenever its source files change.

The role (primary or replica) is picked once from the first command-line
argument and baked into the command line used for every restart.
"""

__version__ = "0.1.0"

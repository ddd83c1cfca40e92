"""
Concrete tool servers built on the shared runtime.
"""

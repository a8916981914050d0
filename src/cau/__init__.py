"""
cau — Certificate Authority Utility.

Keeps a local store of CA certificates in sync with one or more PEM bundle
sources and republishes it as a single bundle file or as a directory of
individual certificates with a managed manifest block.

Built on a small Railway-Oriented Programming (ROP) core (`cau.result`)
for explicit, composable error handling.
"""

__version__ = "1.0.1"

"""
Generation Gateway Application
==============================

Authenticated forwarding gateway between client apps and the upstream
generative model API.
"""

__version__ = "1.0.0"

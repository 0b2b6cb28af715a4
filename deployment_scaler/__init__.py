"""
Deployment Scaler — Read and change Deployment replica counts through a
watch-synchronized local cache.
"""

__version__ = "0.1.0"

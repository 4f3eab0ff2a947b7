"""
Scene graph module initialization.
"""

from .scene import Scene, create_scenes

__all__ = ['Scene', 'create_scenes']

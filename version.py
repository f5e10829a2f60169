"""
Version information for FrostBot
"""

__version__ = "1.0.0"
__version_info__ = {
    'major': 1,
    'minor': 0,
    'build': 0
}

def get_version():
    """Get the current version string"""
    return __version__

def get_version_info():
    """Get version information as a dictionary"""
    return __version_info__.copy()

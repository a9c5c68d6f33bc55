"""Image migration and rendered-HTML filters for Hexo blogs hosted on R2."""

__version__ = "0.1.0"

"""
Polystatic - a multilingual static site generator.

Polystatic takes content written in Markdown or HTML with YAML front matter
and uses Jinja2 layouts to generate a static site in several languages. It
sorts lessons into collections by language, gives every page a clean URL,
and links each page to its equivalents in the other configured languages.
"""

__version__ = "1.0.0"

from .core import Polystatic
from .content import ContentFile, ContentResolver, FrontMatter, resolve
from .settings import SiteConfig, load_site_config

__all__ = ['Polystatic', 'ContentFile', 'ContentResolver', 'FrontMatter', 'resolve', 'SiteConfig', 'load_site_config']

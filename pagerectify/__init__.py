"""pagerectify - perspective correction for photographed pages."""

__version__ = '0.1.0'

"""allyscan — automated WCAG accessibility scanning for HTML files and URLs."""

__version__ = "0.1.0"

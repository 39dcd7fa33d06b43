"""Cloudflare zone audit: organization grouping, WAF and CDN checks."""

__version__ = "1.0.0"
